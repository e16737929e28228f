from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from trade_admin.models import AdminSetting

NEXT_OPENING_DATE_KEY = 'next_opening_date'


def get_setting(db: Session, key: str) -> str | None:
    return db.execute(select(AdminSetting.value).where(AdminSetting.key == key)).scalar_one_or_none()


def set_setting(db: Session, key: str, value: str) -> AdminSetting:
    setting = db.get(AdminSetting, key)
    if setting is None:
        setting = AdminSetting(key=key, value=value)
        db.add(setting)
    else:
        setting.value = value
    db.flush()
    return setting


def save_next_opening_date(db: Session, *, value: str) -> AdminSetting:
    clean = (value or '').strip()
    if not clean:
        raise ValueError('Please enter a date')
    return set_setting(db, NEXT_OPENING_DATE_KEY, clean)


def format_opening_date_preview(raw: str | None) -> str | None:
    """``2026-10-24`` -> ``Saturday, October 24, 2026``; anything unparsable has no preview."""
    clean = (raw or '').strip()
    if not clean:
        return None
    try:
        parsed = date.fromisoformat(clean[:10])
    except ValueError:
        return None
    return f'{parsed:%A}, {parsed:%B} {parsed.day}, {parsed.year}'
