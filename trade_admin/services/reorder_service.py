from __future__ import annotations

import logging
from typing import Callable, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trade_admin.services.sort_utils import contiguous_order

logger = logging.getLogger(__name__)


class ReorderError(ValueError):
    """A new order could not be stored; ``canonical`` is the order re-read from the database."""

    def __init__(self, message: str, canonical: list) -> None:
        super().__init__(message)
        self.canonical = canonical


def persist_order(db: Session, model, ordered_ids: Sequence[int], *, reload: Callable[[], list]) -> list:
    """Write ``order_index`` 0..n-1 for ``ordered_ids`` as one batch.

    On a database error the speculative order is discarded and the stored order is
    reloaded; nothing is merged or retried.
    """
    try:
        db.execute(update(model), contiguous_order(ordered_ids))
        db.flush()
    except SQLAlchemyError as exc:
        logger.warning('Reorder of %s failed, restoring stored order: %s', model.__tablename__, exc)
        db.rollback()
        raise ReorderError('Failed to update order', reload()) from exc
    db.expire_all()
    return reload()
