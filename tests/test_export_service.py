from __future__ import annotations

import csv
import json
import unittest
from datetime import date, datetime
from decimal import Decimal
from io import StringIO

from trade_admin.services.export_service import (
    export_filename,
    export_projection,
    format_datetime,
    to_clipboard_text,
    to_csv,
    to_json,
)

ROWS = [
    {
        'id': 1,
        'name': 'Smith, John',
        'phone_number': '0711',
        'details': 'Said "hi"',
        'weight': Decimal('120.50'),
        'type': 'Beef',
        'depot': 'North',
        'trade_number': None,
        'device_fingerprint': 'fp',
        'submitted_at': datetime(2026, 10, 17, 9, 5),
    },
    {
        'id': 2,
        'name': 'Jane',
        'phone_number': '0722',
        'details': 'Cows',
        'weight': None,
        'type': 'Dairy',
        'depot': 'South',
        'trade_number': '12',
        'device_fingerprint': None,
        'submitted_at': datetime(2026, 10, 18, 14, 45),
    },
]


class ExportServiceTests(unittest.TestCase):
    def test_projection_labels_and_defaults(self) -> None:
        records = export_projection(ROWS)
        self.assertEqual(
            list(records[0].keys()),
            ['Name', 'Phone', 'Details', 'Weight', 'Type', 'Depot', 'Trade Number', 'Submitted At'],
        )
        self.assertEqual(records[0]['Trade Number'], 'N/A')
        self.assertEqual(records[0]['Weight'], '120.5')
        self.assertEqual(records[1]['Weight'], '0')
        self.assertEqual(records[0]['Submitted At'], '17 Oct 2026, 09:05')

    def test_csv_quotes_commas_and_quotes(self) -> None:
        text = to_csv(export_projection(ROWS))
        lines = text.splitlines()
        self.assertEqual(lines[0], 'Name,Phone,Details,Weight,Type,Depot,Trade Number,Submitted At')
        self.assertTrue(lines[1].startswith('"Smith, John",0711,"Said ""hi""",120.5'))

        parsed = list(csv.DictReader(StringIO(text)))
        self.assertEqual(parsed[0]['Name'], 'Smith, John')
        self.assertEqual(parsed[0]['Details'], 'Said "hi"')
        self.assertEqual(parsed[1]['Trade Number'], '12')

    def test_csv_of_nothing_is_empty(self) -> None:
        self.assertEqual(to_csv([]), '')

    def test_json_is_indented_full_rows(self) -> None:
        text = to_json(ROWS)
        self.assertIn('\n  {', text)
        data = json.loads(text)
        self.assertEqual(data[0]['weight'], 120.5)
        self.assertIsNone(data[1]['weight'])
        self.assertEqual(data[1]['submitted_at'], '2026-10-18T14:45:00')
        self.assertEqual(data[0]['device_fingerprint'], 'fp')

    def test_clipboard_lines(self) -> None:
        self.assertEqual(
            to_clipboard_text(ROWS).splitlines(),
            [
                'Smith, John | 0711 | Said "hi" | 120.5kg | Beef | North',
                'Jane | 0722 | Cows | 0kg | Dairy | South',
            ],
        )

    def test_filename_and_dates(self) -> None:
        self.assertEqual(export_filename('csv', date(2026, 10, 18)), 'submissions_2026-10-18.csv')
        self.assertEqual(format_datetime(None), '')
        self.assertEqual(format_datetime('not a date'), 'not a date')


if __name__ == '__main__':
    unittest.main()
