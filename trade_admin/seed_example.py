import argparse
import logging
from datetime import date, timedelta

from sqlalchemy import select

from trade_admin.db import SessionLocal, engine
from trade_admin.logging_setup import setup_logging
from trade_admin.models import Base, DropdownCategory, DropdownOption, Principal, PrincipalRole
from trade_admin.security.passwords import hash_password
from trade_admin.services.dropdown_service import add_option
from trade_admin.services.pooling_service import add_location
from trade_admin.services.trade_service import create_trade, get_active_trade

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = {
    DropdownCategory.DETAILS: ['Heifers', 'Steers', 'Cows', 'Bulls', 'Calves'],
    DropdownCategory.TYPE: ['Beef', 'Dairy', 'Mixed'],
    DropdownCategory.DEPOT: ['North Depot', 'South Depot', 'East Depot'],
}

DEMO_POOLING = ['Town Hall Car Park', 'Riverside Yard', 'Old Mill Gate']


def _ensure_principal(db, username: str, password: str, role: PrincipalRole) -> None:
    existing = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
    if existing:
        return
    db.add(Principal(username=username, password_hash=hash_password(password), role=role, active=True))
    logger.info('Created %s principal %r', role.value, username)


def seed(*, admin_password: str, staff_password: str | None = None, demo: bool = False) -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        _ensure_principal(db, 'admin', admin_password, PrincipalRole.ADMIN)
        if staff_password:
            _ensure_principal(db, 'staff', staff_password, PrincipalRole.STAFF)

        for category, labels in DEFAULT_OPTIONS.items():
            has_options = db.execute(
                select(DropdownOption.id).where(DropdownOption.category == category).limit(1)
            ).first()
            if has_options:
                continue
            for label in labels:
                add_option(db, category=category, label=label)

        if demo and not get_active_trade(db):
            monday = date.today() - timedelta(days=date.today().weekday())
            trade = create_trade(db, trade_number='1', trade_date=monday + timedelta(days=5), is_active=True)
            for offset, location in enumerate(DEMO_POOLING):
                add_location(db, location=location, pooling_date=monday + timedelta(days=offset + 1), trade_id=trade.id)

        db.commit()


def main() -> None:
    parser = argparse.ArgumentParser(description='Create tables and seed the trade admin database.')
    parser.add_argument('--admin-password', required=True)
    parser.add_argument('--staff-password')
    parser.add_argument('--demo', action='store_true', help='also create an active trade with pooling locations')
    args = parser.parse_args()

    setup_logging()
    seed(admin_password=args.admin_password, staff_password=args.staff_password, demo=args.demo)


if __name__ == '__main__':
    main()
