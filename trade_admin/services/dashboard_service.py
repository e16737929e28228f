from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from trade_admin.models import DropdownOption, PoolingSchedule, Submission, Trade
from trade_admin.services.trade_service import get_active_trade

RECENT_SUBMISSIONS_LIMIT = 5


def _count(db: Session, column) -> int:
    return db.execute(select(func.count(column))).scalar_one()


def dashboard_data(db: Session) -> dict:
    stats = [
        {'label': 'Total Trades', 'value': _count(db, Trade.id)},
        {'label': 'Pooling Locations', 'value': _count(db, PoolingSchedule.id)},
        {
            'label': 'Dropdown Options',
            'value': db.execute(
                select(func.count(DropdownOption.id)).where(DropdownOption.is_active.is_(True))
            ).scalar_one(),
        },
        {'label': 'Total Submissions', 'value': _count(db, Submission.id)},
    ]
    recent = db.execute(
        select(Submission)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .limit(RECENT_SUBMISSIONS_LIMIT)
    ).scalars().all()
    return {
        'stats': stats,
        'active_trade': get_active_trade(db),
        'recent_submissions': list(recent),
    }
