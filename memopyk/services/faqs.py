# =============================================================================
# FAQ Ordering
# =============================================================================
#
# Sections and questions are shown by `order_index`. Moving an item to an
# index that a sibling already holds swaps the two, so an admin can move a
# row up or down one step without renumbering the whole list.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


class Ordered(Protocol):
    id: int
    order_index: int


def swap_order_index(
    item: Ordered,
    target_index: int,
    siblings: Iterable[Ordered],
) -> Ordered | None:
    """
    Move `item` to `target_index`.

    The first sibling (other than `item` itself) holding `target_index`
    receives item's previous index. Returns that sibling, or None when no
    sibling held the index and the value was simply assigned.
    """
    previous = item.order_index
    if previous == target_index:
        return None

    swapped = None
    for sibling in siblings:
        if sibling.id != item.id and sibling.order_index == target_index:
            sibling.order_index = previous
            swapped = sibling
            break

    item.order_index = target_index
    return swapped


def next_order_index(existing: Iterable[int | None]) -> int:
    """Index for an item appended after the current last one."""
    return max((i for i in existing if i is not None), default=-1) + 1
