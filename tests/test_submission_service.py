from __future__ import annotations

import unittest
from decimal import Decimal

from trade_admin.services.submission_service import (
    SubmissionFilters,
    coerce_weight,
    dedupe_rows,
    distinct_values,
    duplicate_device_tags,
    filter_submissions,
    total_weight,
)


def _row(row_id, name, phone, **fields):
    row = {
        'id': row_id,
        'name': name,
        'phone_number': phone,
        'details': 'Steers',
        'weight': Decimal('100'),
        'type': 'Beef',
        'depot': 'North Depot',
        'trade_number': '12',
        'device_fingerprint': None,
    }
    row.update(fields)
    return row


ROWS = [
    _row(1, 'Alice Moyo', '0711', depot='North Depot', device_fingerprint='fp-a'),
    _row(2, 'bob ndlovu', '0722', type='Dairy', details='Cows', device_fingerprint='fp-b'),
    _row(3, 'ALICE MOYO ', '0733', trade_number='11', device_fingerprint='fp-a'),
    _row(4, 'Carol', '0722', depot='South Depot', weight=None, device_fingerprint='fp-b'),
    _row(5, 'Dan', '0755', weight='abc', device_fingerprint='fp-a'),
]


class SubmissionFilterTests(unittest.TestCase):
    def test_search_is_case_insensitive_across_fields(self) -> None:
        result = filter_submissions(ROWS, SubmissionFilters(search='alice'))
        self.assertEqual([row['id'] for row in result], [1, 3])

        result = filter_submissions(ROWS, SubmissionFilters(search='dairy'))
        self.assertEqual([row['id'] for row in result], [2])

    def test_search_matches_phone_and_depot(self) -> None:
        self.assertEqual([row['id'] for row in filter_submissions(ROWS, SubmissionFilters(search='072'))], [2, 4])
        self.assertEqual([row['id'] for row in filter_submissions(ROWS, SubmissionFilters(search='south'))], [4])

    def test_field_filters_are_exact_and_combined(self) -> None:
        filters = SubmissionFilters(trade_number='12', depot='North Depot', type='Beef')
        self.assertEqual([row['id'] for row in filter_submissions(ROWS, filters)], [1, 5])

    def test_all_means_no_constraint(self) -> None:
        self.assertEqual(len(filter_submissions(ROWS, SubmissionFilters())), len(ROWS))

    def test_dedupe_by_name_keeps_first_occurrence(self) -> None:
        result = filter_submissions(ROWS, SubmissionFilters(dedupe='name'))
        self.assertEqual([row['id'] for row in result], [1, 2, 4, 5])

    def test_dedupe_by_phone_trims_but_keeps_case(self) -> None:
        rows = [_row(1, 'A', ' 0711'), _row(2, 'B', '0711 '), _row(3, 'C', '0799')]
        self.assertEqual([row['id'] for row in dedupe_rows(rows, 'phone')], [1, 3])

    def test_dedupe_runs_after_filters(self) -> None:
        filters = SubmissionFilters(trade_number='11', dedupe='name')
        self.assertEqual([row['id'] for row in filter_submissions(ROWS, filters)], [3])

    def test_filtering_twice_changes_nothing(self) -> None:
        filters = SubmissionFilters(search='a', dedupe='phone')
        once = filter_submissions(ROWS, filters)
        self.assertEqual(filter_submissions(once, filters), once)
        self.assertEqual(filter_submissions(ROWS, filters), once)

    def test_from_params_normalizes_values(self) -> None:
        filters = SubmissionFilters.from_params({'q': '  bob ', 'depot': '', 'dedupe': 'PHONE'})
        self.assertEqual(filters.search, 'bob')
        self.assertEqual(filters.depot, 'all')
        self.assertEqual(filters.dedupe, 'phone')
        self.assertTrue(filters.is_active)
        self.assertEqual(filters.as_query(), {'q': 'bob', 'dedupe': 'phone'})

    def test_unknown_dedupe_mode_falls_back_to_none(self) -> None:
        filters = SubmissionFilters.from_params({'dedupe': 'email'})
        self.assertEqual(filters.dedupe, 'none')
        self.assertFalse(filters.is_active)


class DuplicateDeviceTagTests(unittest.TestCase):
    def test_repeat_devices_get_palette_entries_in_first_seen_order(self) -> None:
        tags = duplicate_device_tags(ROWS, ['amber', 'sky'])
        self.assertEqual(tags, {'fp-a': 'amber', 'fp-b': 'sky'})

    def test_single_and_missing_fingerprints_are_not_tagged(self) -> None:
        rows = [_row(1, 'A', '1', device_fingerprint='solo'), _row(2, 'B', '2'), _row(3, 'C', '3')]
        self.assertEqual(duplicate_device_tags(rows, ['amber']), {})

    def test_palette_cycles(self) -> None:
        rows = [_row(i, str(i), str(i), device_fingerprint=f'fp-{i // 2}') for i in range(6)]
        tags = duplicate_device_tags(rows, ['amber', 'sky'])
        self.assertEqual(tags, {'fp-0': 'amber', 'fp-1': 'sky', 'fp-2': 'amber'})

    def test_empty_palette_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            duplicate_device_tags(ROWS, [])


class WeightTests(unittest.TestCase):
    def test_coerce_weight(self) -> None:
        self.assertEqual(coerce_weight('12.5'), Decimal('12.5'))
        self.assertEqual(coerce_weight(7), Decimal('7'))
        self.assertEqual(coerce_weight(None), Decimal('0'))
        self.assertEqual(coerce_weight('abc'), Decimal('0'))
        self.assertEqual(coerce_weight('NaN'), Decimal('0'))
        self.assertEqual(coerce_weight(True), Decimal('0'))

    def test_mixed_weights_sum(self) -> None:
        rows = [{'weight': 10}, {'weight': '20'}, {'weight': None}]
        self.assertEqual(total_weight(rows), Decimal('30'))

    def test_total_weight_treats_bad_values_as_zero(self) -> None:
        self.assertEqual(total_weight(ROWS), Decimal('300'))
        self.assertEqual(total_weight([]), Decimal('0'))

    def test_distinct_values_sorted_without_blanks(self) -> None:
        rows = ROWS + [_row(6, 'E', '6', depot='')]
        self.assertEqual(distinct_values(rows, 'depot'), ['North Depot', 'South Depot'])


if __name__ == '__main__':
    unittest.main()
