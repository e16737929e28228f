from __future__ import annotations

import csv
import json
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from typing import Iterable

from trade_admin.services.submission_service import coerce_weight

EXPORT_MEDIA_TYPES = {
    'csv': 'text/csv',
    'json': 'application/json',
    'txt': 'text/plain',
}


def format_datetime(value: datetime | str | None) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime('%d %b %Y, %H:%M')


def _weight_text(value) -> str:
    weight = coerce_weight(value)
    return format(weight.normalize(), 'f') if weight else '0'


def export_projection(rows: Iterable[dict]) -> list[dict]:
    return [
        {
            'Name': row.get('name') or '',
            'Phone': row.get('phone_number') or '',
            'Details': row.get('details') or '',
            'Weight': _weight_text(row.get('weight')),
            'Type': row.get('type') or '',
            'Depot': row.get('depot') or '',
            'Trade Number': row.get('trade_number') or 'N/A',
            'Submitted At': format_datetime(row.get('submitted_at')),
        }
        for row in rows
    ]


def to_csv(records: list[dict]) -> str:
    """Header from the first record's keys; fields with commas or quotes are quoted, quotes doubled."""
    if not records:
        return ''
    headers = list(records[0].keys())
    sio = StringIO()
    writer = csv.writer(sio, lineterminator='\n')
    writer.writerow(headers)
    for record in records:
        writer.writerow(['' if record.get(header) is None else str(record.get(header)) for header in headers])
    return sio.getvalue()


def _json_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f'Object of type {type(value).__name__} is not JSON serializable')


def to_json(rows: list[dict]) -> str:
    return json.dumps(rows, indent=2, default=_json_default)


def to_clipboard_text(rows: Iterable[dict]) -> str:
    return '\n'.join(
        f"{row.get('name') or ''} | {row.get('phone_number') or ''} | {row.get('details') or ''} | "
        f"{_weight_text(row.get('weight'))}kg | {row.get('type') or ''} | {row.get('depot') or ''}"
        for row in rows
    )


def export_filename(extension: str, today: date | None = None) -> str:
    today = today or date.today()
    return f'submissions_{today.isoformat()}.{extension}'
