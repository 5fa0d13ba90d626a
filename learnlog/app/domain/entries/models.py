"""Learning log entry model and category normalization."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from uuid import uuid4

__all__ = [
    "ALL_CATEGORIES",
    "UNCATEGORIZED",
    "Entry",
    "EntryDraft",
    "as_utc",
    "normalize_categories",
    "range_end",
    "range_start",
    "utcnow",
]

UNCATEGORIZED = "Uncategorized"
# Category tab label that disables category filtering.
ALL_CATEGORIES = "All"

DateBound = Union[date, datetime]


def utcnow() -> datetime:
    """Return timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with stored ones."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def range_start(value: DateBound) -> datetime:
    """Lower bound of a created-at range; a bare date starts at midnight UTC."""

    if isinstance(value, datetime):
        return as_utc(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def range_end(value: DateBound) -> datetime:
    """Upper bound of a created-at range; a bare date covers that whole day."""

    if isinstance(value, datetime):
        return as_utc(value)
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


def normalize_categories(categories: Optional[Iterable[Optional[str]]]) -> List[str]:
    """Collapse blanks to the sentinel label and drop duplicates.

    ``None`` (no labels at all) yields ``["Uncategorized"]``; the result is
    never empty and keeps first-seen order.
    """

    if categories is None:
        return [UNCATEGORIZED]
    if isinstance(categories, str):
        categories = [categories]
    normalized: List[str] = []
    seen: set[str] = set()
    for label in categories:
        value = label if isinstance(label, str) and label.strip() else UNCATEGORIZED
        if value in seen:
            continue
        seen.add(value)
        normalized.append(value)
    return normalized or [UNCATEGORIZED]


@dataclass(frozen=True)
class Entry:
    """A single learning log record."""

    entry_id: str
    title: str
    body: str
    categories: Tuple[str, ...]
    created_at: datetime
    sort_key: int
    owner_id: str
    updated_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        *,
        title: str,
        body: str = "",
        categories: Optional[Sequence[Optional[str]]] = None,
        owner_id: str,
        sort_key: int = 0,
        entry_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "Entry":
        """Factory that normalizes categories and stamps ids/timestamps."""

        ts = created_at or utcnow()
        return cls(
            entry_id=entry_id or str(uuid4()),
            title=title,
            body=body,
            categories=tuple(normalize_categories(categories)),
            created_at=ts,
            sort_key=int(sort_key),
            owner_id=owner_id,
            updated_at=ts,
        )

    def with_sort_key(self, sort_key: int) -> "Entry":
        return replace(self, sort_key=int(sort_key))

    def with_content(
        self,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        categories: Optional[Sequence[Optional[str]]] = None,
        timestamp: Optional[datetime] = None,
    ) -> "Entry":
        """Return a copy with the given editable fields replaced."""

        return replace(
            self,
            title=self.title if title is None else title,
            body=self.body if body is None else body,
            categories=self.categories
            if categories is None
            else tuple(normalize_categories(categories)),
            updated_at=timestamp or utcnow(),
        )

    def has_category(self, label: str) -> bool:
        return label in normalize_categories(self.categories)


@dataclass(frozen=True)
class EntryDraft:
    """Client-supplied fields for an entry the store has not yet assigned an id."""

    title: str
    body: str = ""
    categories: Tuple[str, ...] = (UNCATEGORIZED,)
    created_at: Optional[datetime] = None
    sort_key: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "categories", tuple(normalize_categories(self.categories))
        )
