from __future__ import annotations

from typing import Iterable, Sequence, TypeVar

T = TypeVar('T')


def move_item(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    """Return a copy of ``items`` with the element at ``from_index`` moved to ``to_index``."""
    result = list(items)
    if not result:
        return result
    if not 0 <= from_index < len(result):
        raise IndexError('from_index out of range')
    to_index = max(0, min(to_index, len(result) - 1))
    result.insert(to_index, result.pop(from_index))
    return result


def contiguous_order(ordered_ids: Iterable[int]) -> list[dict]:
    return [{'id': item_id, 'order_index': index} for index, item_id in enumerate(ordered_ids)]


def validate_order_ids(ordered_ids: Sequence[int], known_ids: Iterable[int]) -> list[int]:
    ids = list(ordered_ids)
    if not ids:
        raise ValueError('Nothing to reorder')
    if len(set(ids)) != len(ids):
        raise ValueError('Duplicate ids in new order')
    missing = set(ids) - set(known_ids)
    if missing:
        raise ValueError(f'Unknown ids in new order: {sorted(missing)}')
    return ids
