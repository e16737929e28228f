from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from trade_admin.models import DropdownCategory, DropdownOption
from trade_admin.services.reorder_service import persist_order
from trade_admin.services.sort_utils import move_item, validate_order_ids

logger = logging.getLogger(__name__)

CATEGORY_LABELS = {
    DropdownCategory.DETAILS: 'Details',
    DropdownCategory.TYPE: 'Type',
    DropdownCategory.DEPOT: 'Depot',
}


def parse_category(value: str | DropdownCategory) -> DropdownCategory:
    if isinstance(value, DropdownCategory):
        return value
    try:
        return DropdownCategory((value or '').strip().lower())
    except ValueError as exc:
        raise ValueError(f'Unknown dropdown category: {value}') from exc


def list_options(
    db: Session,
    *,
    category: str | DropdownCategory | None = None,
    include_inactive: bool = False,
) -> list[DropdownOption]:
    stmt = select(DropdownOption)
    if category is not None:
        stmt = stmt.where(DropdownOption.category == parse_category(category))
    if not include_inactive:
        stmt = stmt.where(DropdownOption.is_active.is_(True))
    stmt = stmt.order_by(DropdownOption.order_index.asc(), DropdownOption.id.asc())
    return list(db.execute(stmt).scalars().all())


def options_by_category(db: Session) -> dict[DropdownCategory, list[DropdownOption]]:
    grouped: dict[DropdownCategory, list[DropdownOption]] = {category: [] for category in DropdownCategory}
    for option in list_options(db):
        grouped[option.category].append(option)
    return grouped


def _get_option(db: Session, option_id: int) -> DropdownOption:
    option = db.get(DropdownOption, option_id)
    if not option or not option.is_active:
        raise ValueError('Option not found')
    return option


def _clean_label(label: str) -> str:
    clean = (label or '').strip()
    if not clean:
        raise ValueError('Please enter a label')
    return clean


def add_option(db: Session, *, category: str | DropdownCategory, label: str) -> DropdownOption:
    parsed = parse_category(category)
    clean = _clean_label(label)
    # Not a sequence: two concurrent adds can land on the same index.
    max_index = db.execute(
        select(func.max(DropdownOption.order_index)).where(
            DropdownOption.category == parsed,
            DropdownOption.is_active.is_(True),
        )
    ).scalar_one_or_none()
    option = DropdownOption(
        category=parsed,
        label=clean,
        order_index=(max_index + 1 if max_index is not None else 0),
        is_active=True,
    )
    db.add(option)
    db.flush()
    return option


def update_option(db: Session, *, option_id: int, label: str) -> DropdownOption:
    option = _get_option(db, option_id)
    option.label = _clean_label(label)
    db.flush()
    return option


def deactivate_option(db: Session, *, option_id: int) -> DropdownOption:
    option = _get_option(db, option_id)
    option.is_active = False
    db.flush()

    remaining = [item.id for item in list_options(db, category=option.category)]
    if remaining:
        persist_order(db, DropdownOption, remaining, reload=lambda: list_options(db, category=option.category))
    logger.info('Dropdown option %s (%s) deactivated', option.id, option.label)
    return option


def reorder_options(
    db: Session,
    *,
    category: str | DropdownCategory,
    ordered_ids: list[int],
) -> list[DropdownOption]:
    parsed = parse_category(category)
    known_ids = [item.id for item in list_options(db, category=parsed)]
    ids = validate_order_ids(ordered_ids, known_ids)
    if len(ids) != len(known_ids):
        raise ValueError('New order must include every option in the category')
    return persist_order(db, DropdownOption, ids, reload=lambda: list_options(db, category=parsed))


def move_option(db: Session, *, option_id: int, direction: str) -> list[DropdownOption]:
    option = _get_option(db, option_id)
    if direction not in {'up', 'down'}:
        raise ValueError('Direction must be up or down')
    ids = [item.id for item in list_options(db, category=option.category)]
    from_index = ids.index(option.id)
    reordered = move_item(ids, from_index, from_index + (-1 if direction == 'up' else 1))
    return reorder_options(db, category=option.category, ordered_ids=reordered)
