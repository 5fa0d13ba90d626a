"""Single-writer container for the locally displayed entry list."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..domain.entries.models import (
    ALL_CATEGORIES,
    Entry,
    as_utc,
    normalize_categories,
    range_end,
    range_start,
)
from ..domain.entries.ordering import sort_for_display

__all__ = ["EntryFilter", "EntryListState", "ListPhase"]


class ListPhase(str, Enum):
    STABLE = "stable"
    REORDERING = "reordering"
    RESYNCING = "resyncing"


@dataclass(frozen=True)
class EntryFilter:
    """Category tab, search box and date range applied to the list."""

    category: Optional[str] = None
    search: str = ""
    created_from: Optional[date | datetime] = None
    created_to: Optional[date | datetime] = None

    def matches(self, entry: Entry) -> bool:
        if self.category and self.category != ALL_CATEGORIES:
            if self.category not in normalize_categories(entry.categories):
                return False
        needle = self.search.strip().lower()
        if needle and needle not in entry.title.lower() and needle not in entry.body.lower():
            return False
        created_at = as_utc(entry.created_at)
        if self.created_from is not None and created_at < range_start(self.created_from):
            return False
        if self.created_to is not None and created_at > range_end(self.created_to):
            return False
        return True


class EntryListState:
    """Holds the full collection; ``commit`` is the only way to change it.

    Every commit re-sorts by display order and bumps ``revision`` so that
    asynchronous work can tell whether the list moved on while it waited.
    """

    def __init__(self, entries: Iterable[Entry] = ()) -> None:
        self._entries: Tuple[Entry, ...] = tuple(sort_for_display(entries))
        self._revision = 0
        self.phase = ListPhase.STABLE

    @property
    def entries(self) -> Tuple[Entry, ...]:
        return self._entries

    @property
    def revision(self) -> int:
        return self._revision

    def __len__(self) -> int:
        return len(self._entries)

    def commit(self, entries: Iterable[Entry]) -> int:
        self._entries = tuple(sort_for_display(entries))
        self._revision += 1
        return self._revision

    def clear(self) -> int:
        return self.commit(())

    def visible(self, entry_filter: Optional[EntryFilter] = None) -> Tuple[Entry, ...]:
        if entry_filter is None:
            return self._entries
        return tuple(entry for entry in self._entries if entry_filter.matches(entry))

    def find(self, entry_id: str) -> Optional[Entry]:
        for entry in self._entries:
            if entry.entry_id == entry_id:
                return entry
        return None
