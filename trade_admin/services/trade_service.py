from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from trade_admin.models import PoolingSchedule, Trade

logger = logging.getLogger(__name__)


def list_trades(db: Session) -> list[Trade]:
    return list(db.execute(select(Trade).order_by(Trade.created_at.desc(), Trade.id.desc())).scalars().all())


def get_active_trade(db: Session) -> Trade | None:
    return db.execute(
        select(Trade).where(Trade.is_active.is_(True)).order_by(Trade.created_at.desc(), Trade.id.desc())
    ).scalars().first()


def get_trade(db: Session, *, trade_id: int) -> Trade:
    trade = db.get(Trade, trade_id)
    if not trade:
        raise ValueError('Trade not found')
    return trade


def _clean_trade_fields(trade_number: str, trade_date: date | None) -> str:
    clean_number = (trade_number or '').strip()
    if not clean_number:
        raise ValueError('Trade number is required')
    if trade_date is None:
        raise ValueError('Trade date is required')
    return clean_number


def activate_trade(db: Session, *, trade_id: int, sync_pooling: bool = False) -> Trade:
    """Make ``trade_id`` the only active trade.

    A single UPDATE flips every row at once, so concurrent activations serialize on
    the row locks instead of interleaving a deactivate step with an activate step.
    """
    trade = get_trade(db, trade_id=trade_id)
    db.execute(update(Trade).values(is_active=(Trade.id == trade_id)))
    db.flush()
    db.refresh(trade)
    logger.info('Trade %s (%s) is now the active trade', trade.id, trade.trade_number)
    if sync_pooling:
        sync_pooling_to_trade(db, trade_id=trade.id)
    return trade


def deactivate_trade(db: Session, *, trade_id: int) -> Trade:
    trade = get_trade(db, trade_id=trade_id)
    trade.is_active = False
    db.flush()
    return trade


def sync_pooling_to_trade(db: Session, *, trade_id: int) -> int:
    result = db.execute(
        update(PoolingSchedule)
        .where((PoolingSchedule.trade_id.is_(None)) | (PoolingSchedule.trade_id != trade_id))
        .values(trade_id=trade_id)
    )
    changed = result.rowcount or 0
    if changed:
        logger.info('Pointed %s pooling rows at trade %s', changed, trade_id)
    return changed


def create_trade(
    db: Session,
    *,
    trade_number: str,
    trade_date: date | None,
    is_active: bool = False,
    sync_pooling: bool = False,
) -> Trade:
    clean_number = _clean_trade_fields(trade_number, trade_date)
    trade = Trade(trade_number=clean_number, trade_date=trade_date, is_active=False)
    db.add(trade)
    db.flush()
    if is_active:
        activate_trade(db, trade_id=trade.id, sync_pooling=sync_pooling)
    return trade


def update_trade(
    db: Session,
    *,
    trade_id: int,
    trade_number: str,
    trade_date: date | None,
    is_active: bool,
    sync_pooling: bool = False,
) -> Trade:
    trade = get_trade(db, trade_id=trade_id)
    clean_number = _clean_trade_fields(trade_number, trade_date)
    was_active = trade.is_active
    trade.trade_number = clean_number
    trade.trade_date = trade_date
    db.flush()
    if is_active and not was_active:
        activate_trade(db, trade_id=trade.id, sync_pooling=sync_pooling)
    elif not is_active and was_active:
        deactivate_trade(db, trade_id=trade.id)
    return trade


def delete_trade(db: Session, *, trade_id: int) -> Trade:
    # No guard on deleting the active trade; its pooling rows are detached, not removed.
    trade = get_trade(db, trade_id=trade_id)
    db.execute(update(PoolingSchedule).where(PoolingSchedule.trade_id == trade_id).values(trade_id=None))
    db.delete(trade)
    db.flush()
    logger.info('Deleted trade %s (%s)', trade_id, trade.trade_number)
    return trade
