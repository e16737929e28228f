from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from trade_admin.models import Submission, Trade
from trade_admin.services.trade_service import create_trade, get_active_trade, list_trades

logger = logging.getLogger(__name__)

NEXT_TRADE_OFFSET = timedelta(days=7)


@dataclass(frozen=True)
class ResetOverview:
    active_trade: Trade | None
    submission_count: int
    total_trades: int
    inactive_trades: int
    last_trade_number: str
    suggested_trade_number: str
    suggested_trade_date: date


def suggest_next_trade_number(last_trade_number: str) -> str:
    clean = (last_trade_number or '').strip()
    if clean.isdigit():
        return str(int(clean) + 1).zfill(len(clean))
    return ''


def reset_overview(db: Session, *, today: date | None = None) -> ResetOverview:
    today = today or date.today()
    trades = list_trades(db)
    active = next((trade for trade in trades if trade.is_active), None)
    submission_count = 0
    if active:
        submission_count = db.execute(
            select(func.count(Submission.id)).where(Submission.trade_number == active.trade_number)
        ).scalar_one()
    last_number = trades[0].trade_number if trades else ''
    return ResetOverview(
        active_trade=active,
        submission_count=submission_count,
        total_trades=len(trades),
        inactive_trades=sum(1 for trade in trades if not trade.is_active),
        last_trade_number=last_number,
        suggested_trade_number=suggest_next_trade_number(last_number),
        suggested_trade_date=today + NEXT_TRADE_OFFSET,
    )


def close_active_trade(db: Session) -> Trade:
    active = get_active_trade(db)
    if not active:
        raise ValueError('There is no active trade to close')
    active.is_active = False
    db.flush()
    logger.info('Closed trade %s (%s)', active.id, active.trade_number)
    return active


def create_next_trade(
    db: Session,
    *,
    trade_number: str,
    trade_date: date | None,
    sync_pooling: bool = False,
) -> Trade:
    # Goes through the activation transition so a standalone create never leaves two active trades.
    return create_trade(
        db,
        trade_number=trade_number,
        trade_date=trade_date,
        is_active=True,
        sync_pooling=sync_pooling,
    )


def weekly_reset(
    db: Session,
    *,
    trade_number: str,
    trade_date: date | None,
    sync_pooling: bool = False,
) -> tuple[Trade | None, Trade]:
    """Close the active trade (if any) and open the next one.

    Both steps share the caller's transaction; if creating the new trade fails the
    caller rolls back and the closed trade stays active.
    """
    closed = get_active_trade(db)
    if closed:
        close_active_trade(db)
    created = create_next_trade(db, trade_number=trade_number, trade_date=trade_date, sync_pooling=sync_pooling)
    return closed, created
