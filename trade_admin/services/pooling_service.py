from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from trade_admin.models import PoolingSchedule, Trade
from trade_admin.services.reorder_service import persist_order
from trade_admin.services.sort_utils import move_item, validate_order_ids
from trade_admin.services.trade_service import get_active_trade

logger = logging.getLogger(__name__)


def list_schedule(db: Session, *, trade_id: int | None = None) -> list[PoolingSchedule]:
    stmt = select(PoolingSchedule)
    if trade_id is not None:
        stmt = stmt.where(PoolingSchedule.trade_id == trade_id)
    stmt = stmt.order_by(
        PoolingSchedule.order_index.asc(),
        PoolingSchedule.pooling_date.asc(),
        PoolingSchedule.id.asc(),
    )
    return list(db.execute(stmt).scalars().all())


def _get_item(db: Session, item_id: int) -> PoolingSchedule:
    item = db.get(PoolingSchedule, item_id)
    if not item:
        raise ValueError('Pooling location not found')
    return item


def _clean_fields(location: str, pooling_date: date | None) -> str:
    clean_location = (location or '').strip()
    if not clean_location or pooling_date is None:
        raise ValueError('Please fill in all fields')
    return clean_location


def add_location(
    db: Session,
    *,
    location: str,
    pooling_date: date | None,
    trade_id: int | None = None,
) -> PoolingSchedule:
    clean_location = _clean_fields(location, pooling_date)
    if trade_id is not None:
        if not db.get(Trade, trade_id):
            raise ValueError('Trade not found')
    else:
        active = get_active_trade(db)
        trade_id = active.id if active else None

    max_index = db.execute(select(func.max(PoolingSchedule.order_index))).scalar_one_or_none()
    item = PoolingSchedule(
        trade_id=trade_id,
        location=clean_location,
        pooling_date=pooling_date,
        order_index=(max_index + 1 if max_index is not None else 0),
    )
    db.add(item)
    db.flush()
    return item


def update_location(db: Session, *, item_id: int, location: str, pooling_date: date | None) -> PoolingSchedule:
    item = _get_item(db, item_id)
    item.location = _clean_fields(location, pooling_date)
    item.pooling_date = pooling_date
    db.flush()
    return item


def delete_location(db: Session, *, item_id: int) -> PoolingSchedule:
    item = _get_item(db, item_id)
    db.delete(item)
    db.flush()
    return item


def reorder_locations(
    db: Session,
    *,
    ordered_ids: list[int],
    trade_id: int | None = None,
) -> list[PoolingSchedule]:
    known_ids = [item.id for item in list_schedule(db, trade_id=trade_id)]
    ids = validate_order_ids(ordered_ids, known_ids)
    if len(ids) != len(known_ids):
        raise ValueError('New order must include every pooling location')

    full_order = ids
    if trade_id is not None:
        # One trade's rows take each other's slots; the rest of the schedule keeps its place.
        replacements = iter(ids)
        scoped = set(known_ids)
        full_order = [item.id if item.id not in scoped else next(replacements) for item in list_schedule(db)]

    result = persist_order(db, PoolingSchedule, full_order, reload=lambda: list_schedule(db, trade_id=trade_id))
    logger.info('Pooling schedule reordered: %s', ids)
    return result


def move_location(db: Session, *, item_id: int, offset: int, trade_id: int | None = None) -> list[PoolingSchedule]:
    items = list_schedule(db, trade_id=trade_id)
    ids = [item.id for item in items]
    if item_id not in ids:
        raise ValueError('Pooling location not found')
    from_index = ids.index(item_id)
    reordered = move_item(ids, from_index, from_index + offset)
    if reordered == ids:
        return items
    return reorder_locations(db, ordered_ids=reordered, trade_id=trade_id)
