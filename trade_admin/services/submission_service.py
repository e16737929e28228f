from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from trade_admin.models import Submission

ALL = 'all'
DEDUPE_MODES = ('none', 'name', 'phone')
SEARCH_FIELDS = ('name', 'phone_number', 'details', 'depot', 'type')


@dataclass(frozen=True)
class SubmissionFilters:
    search: str = ''
    trade_number: str = ALL
    depot: str = ALL
    type: str = ALL
    details: str = ALL
    dedupe: str = 'none'

    @classmethod
    def from_params(cls, params) -> 'SubmissionFilters':
        dedupe = (params.get('dedupe') or 'none').strip().lower()
        return cls(
            search=(params.get('q') or '').strip(),
            trade_number=(params.get('trade_number') or ALL).strip() or ALL,
            depot=(params.get('depot') or ALL).strip() or ALL,
            type=(params.get('type') or ALL).strip() or ALL,
            details=(params.get('details') or ALL).strip() or ALL,
            dedupe=dedupe if dedupe in DEDUPE_MODES else 'none',
        )

    @property
    def is_active(self) -> bool:
        return bool(self.search) or self.dedupe != 'none' or any(
            value != ALL for value in (self.trade_number, self.depot, self.type, self.details)
        )

    def as_query(self) -> dict:
        query = {
            'q': self.search,
            'trade_number': self.trade_number,
            'depot': self.depot,
            'type': self.type,
            'details': self.details,
            'dedupe': self.dedupe,
        }
        return {key: value for key, value in query.items() if value and value not in (ALL, 'none')}


def list_submissions(db: Session) -> list[Submission]:
    return list(
        db.execute(select(Submission).order_by(Submission.submitted_at.desc(), Submission.id.desc())).scalars().all()
    )


def get_submission(db: Session, *, submission_id: int) -> Submission:
    submission = db.get(Submission, submission_id)
    if not submission:
        raise ValueError('Submission not found')
    return submission


def submission_to_dict(submission: Submission) -> dict:
    return {
        'id': submission.id,
        'trade_number': submission.trade_number,
        'name': submission.name,
        'phone_number': submission.phone_number,
        'details': submission.details,
        'weight': submission.weight,
        'type': submission.type,
        'depot': submission.depot,
        'device_fingerprint': submission.device_fingerprint,
        'submitted_at': submission.submitted_at,
    }


def _text(row: dict, field: str) -> str:
    value = row.get(field)
    return '' if value is None else str(value)


def _matches(row: dict, filters: SubmissionFilters) -> bool:
    if filters.search:
        needle = filters.search.casefold()
        if not any(needle in _text(row, field).casefold() for field in SEARCH_FIELDS):
            return False
    for field in ('trade_number', 'depot', 'type', 'details'):
        wanted = getattr(filters, field)
        if wanted != ALL and _text(row, field) != wanted:
            return False
    return True


def dedupe_key(row: dict, mode: str) -> str:
    if mode == 'name':
        return _text(row, 'name').strip().casefold()
    if mode == 'phone':
        return _text(row, 'phone_number').strip()
    raise ValueError(f'Unknown dedupe mode: {mode}')


def dedupe_rows(rows: Iterable[dict], mode: str) -> list[dict]:
    if mode == 'none':
        return list(rows)
    seen: set[str] = set()
    kept = []
    for row in rows:
        key = dedupe_key(row, mode)
        if key in seen:
            continue
        seen.add(key)
        kept.append(row)
    return kept


def filter_submissions(rows: Sequence[dict], filters: SubmissionFilters) -> list[dict]:
    """Search, field filters, then the optional unique-by pass, preserving input order."""
    matched = [row for row in rows if _matches(row, filters)]
    return dedupe_rows(matched, filters.dedupe)


def duplicate_device_tags(rows: Iterable[dict], palette: Sequence[str]) -> dict[str, str]:
    """Map every fingerprint seen more than once to a palette entry, cycling in order of first appearance."""
    if not palette:
        raise ValueError('Palette must not be empty')
    fingerprints = [row.get('device_fingerprint') for row in rows]
    counts = Counter(fp for fp in fingerprints if fp)
    tags: dict[str, str] = {}
    for fp in fingerprints:
        if fp and counts[fp] > 1 and fp not in tags:
            tags[fp] = palette[len(tags) % len(palette)]
    return tags


def coerce_weight(value) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal('0')
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not result.is_finite():
        return Decimal('0')
    return result


def total_weight(rows: Iterable[dict]) -> Decimal:
    return sum((coerce_weight(row.get('weight')) for row in rows), Decimal('0'))


def distinct_values(rows: Iterable[dict], field: str) -> list[str]:
    return sorted({_text(row, field) for row in rows if _text(row, field)})
