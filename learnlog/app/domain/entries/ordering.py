"""Manual ordering rules shared by the client core and the entry store.

Display order is descending ``sort_key`` with ties broken by descending
``created_at``. New entries take ``max + 1``. A reordered block is re-keyed
from ``base = max + REORDER_KEY_SPACING`` downward (``base - i``) so the
whole block sorts above every untouched entry without renumbering them.
Keys therefore only grow; a periodic global renumbering would be needed to
keep them small, and nothing here does that.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from .models import Entry

__all__ = [
    "REORDER_KEY_SPACING",
    "ReorderPlan",
    "assign_block_keys",
    "block_spacing",
    "display_order_key",
    "merge_block",
    "move_item",
    "next_sort_key",
    "plan_reorder",
    "reorder_base",
    "sort_for_display",
]

REORDER_KEY_SPACING = 1000

T = TypeVar("T")


def display_order_key(entry: Entry) -> Tuple[int, float]:
    return (entry.sort_key, entry.created_at.timestamp())


def sort_for_display(entries: Iterable[Entry]) -> List[Entry]:
    return sorted(entries, key=display_order_key, reverse=True)


def next_sort_key(entries: Iterable[Entry]) -> int:
    """Key for a freshly created entry: one above the current maximum."""

    # Zero is folded in so an empty or all-negative list starts at 1.
    return max([0, *(entry.sort_key for entry in entries)]) + 1


def block_spacing(block_size: int) -> int:
    """Gap between the previous maximum and the top of a re-keyed block.

    Grows with the block so ``base - (block_size - 1)`` always stays above
    the previous maximum.
    """

    return max(REORDER_KEY_SPACING, block_size)


def reorder_base(entries: Iterable[Entry], block_size: int) -> int:
    """Top key for a re-keyed block of ``block_size`` entries."""

    highest = max([0, *(entry.sort_key for entry in entries)])
    return highest + block_spacing(block_size)


def move_item(items: Sequence[T], source_index: int, target_index: int) -> List[T]:
    """Remove the item at ``source_index`` and reinsert it at ``target_index``."""

    moved = list(items)
    item = moved.pop(source_index)
    moved.insert(target_index, item)
    return moved


def assign_block_keys(block: Sequence[Entry], base: int) -> List[Entry]:
    return [entry.with_sort_key(base - index) for index, entry in enumerate(block)]


def merge_block(entries: Iterable[Entry], block: Sequence[Entry]) -> List[Entry]:
    """Replace block members inside ``entries`` and re-sort for display."""

    replacements = {entry.entry_id: entry for entry in block}
    merged = [replacements.get(entry.entry_id, entry) for entry in entries]
    return sort_for_display(merged)


@dataclass(frozen=True)
class ReorderPlan:
    """Outcome of a drag gesture, computed before anything is committed."""

    moved_id: str
    ordered_ids: Tuple[str, ...]
    visible: Tuple[Entry, ...]
    merged: Tuple[Entry, ...]
    base: int


def plan_reorder(
    entries: Sequence[Entry],
    visible: Sequence[Entry],
    moved_id: str,
    source_index: int,
    target_index: int,
) -> Optional[ReorderPlan]:
    """Compute the new full order for a drag over the visible subsequence.

    Returns ``None`` for gestures that must not change anything: indices
    outside the visible sequence, source and target naming the same entry,
    or a source position that no longer holds ``moved_id``.
    """

    size = len(visible)
    if not (0 <= source_index < size and 0 <= target_index < size):
        return None
    source_id = visible[source_index].entry_id
    target_id = visible[target_index].entry_id
    if source_id != moved_id or source_id == target_id:
        return None

    reordered = move_item(visible, source_index, target_index)
    base = reorder_base(entries, len(reordered))
    rekeyed = assign_block_keys(reordered, base)
    merged = merge_block(entries, rekeyed)
    return ReorderPlan(
        moved_id=moved_id,
        ordered_ids=tuple(entry.entry_id for entry in rekeyed),
        visible=tuple(rekeyed),
        merged=tuple(merged),
        base=base,
    )
