"""Entry store gateway implementations."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
    cast,
    delete,
    func,
    insert,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.engine import Connection, Engine

from ...infra.db import get_engine
from ...infra.logging import get_logger
from .errors import EntryNotFoundError, ReorderRejectedError
from .models import (
    UNCATEGORIZED,
    Entry,
    EntryDraft,
    as_utc,
    normalize_categories,
    range_end,
    range_start,
)
from .ordering import block_spacing, next_sort_key, reorder_base, sort_for_display

__all__ = [
    "EntryPage",
    "EntryQuery",
    "EntryStoreGateway",
    "InMemoryEntryStoreGateway",
    "SqlEntryStoreGateway",
    "build_entries_table",
    "build_entry_store_gateway",
    "collect_categories",
]

logger = get_logger(__name__)

ENTRIES_TABLE_NAME = "entries"


@dataclass(frozen=True)
class EntryQuery:
    """Normalized filter set for entry listing."""

    category: Optional[str] = None
    terms: tuple[str, ...] = tuple()
    created_from: date | datetime | None = None
    created_to: date | datetime | None = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass(frozen=True)
class EntryPage:
    """Container for paginated entry listing results."""

    items: List[Entry]
    total: int


class EntryStoreGateway(Protocol):  # pragma: no cover
    """Persistence contract for learning log entries, scoped per owner."""

    def list_entries(self, owner_id: str, query: EntryQuery) -> EntryPage: ...

    def get_entry(self, owner_id: str, entry_id: str) -> Entry: ...

    def insert_entry(self, owner_id: str, draft: EntryDraft) -> Entry: ...

    def insert_many(
        self, owner_id: str, drafts: Sequence[EntryDraft]
    ) -> List[Entry]: ...

    def update_entry(
        self,
        owner_id: str,
        entry_id: str,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> Entry: ...

    def delete_entry(self, owner_id: str, entry_id: str) -> Entry: ...

    def reorder(self, owner_id: str, entry_ids: Sequence[str]) -> List[Entry]: ...

    def list_categories(self, owner_id: str) -> List[str]: ...

    def ping(self) -> bool: ...


def collect_categories(category_lists: Iterable[Optional[Iterable[str]]]) -> List[str]:
    """Sentinel label first, then every other label in first-seen order."""

    labels: List[str] = [UNCATEGORIZED]
    for categories in category_lists:
        for label in normalize_categories(categories):
            if label not in labels:
                labels.append(label)
    return labels


def matches_query(entry: Entry, query: EntryQuery) -> bool:
    if query.category and not entry.has_category(query.category):
        return False
    created_at = as_utc(entry.created_at)
    if query.created_from is not None and created_at < range_start(query.created_from):
        return False
    if query.created_to is not None and created_at > range_end(query.created_to):
        return False
    if query.terms:
        haystack = f"{entry.title}\n{entry.body}".lower()
        if not all(term in haystack for term in query.terms):
            return False
    return True


class InMemoryEntryStoreGateway(EntryStoreGateway):
    """Simple in-memory entry store used for local development and tests."""

    def __init__(self) -> None:
        self._entries: Dict[str, Entry] = {}

    def list_entries(self, owner_id: str, query: EntryQuery) -> EntryPage:
        matching = sort_for_display(
            entry
            for entry in self._owned(owner_id)
            if matches_query(entry, query)
        )
        offset = max(query.offset, 0)
        end = None if query.limit is None else offset + max(query.limit, 0)
        return EntryPage(items=matching[offset:end], total=len(matching))

    def get_entry(self, owner_id: str, entry_id: str) -> Entry:
        record = self._entries.get(entry_id)
        if record is None or record.owner_id != owner_id:
            raise EntryNotFoundError(entry_id)
        return record

    def insert_entry(self, owner_id: str, draft: EntryDraft) -> Entry:
        sort_key = (
            draft.sort_key
            if draft.sort_key is not None
            else next_sort_key(self._owned(owner_id))
        )
        record = Entry.new(
            title=draft.title,
            body=draft.body,
            categories=draft.categories,
            owner_id=owner_id,
            sort_key=sort_key,
            created_at=draft.created_at,
        )
        self._entries[record.entry_id] = record
        return record

    def insert_many(self, owner_id: str, drafts: Sequence[EntryDraft]) -> List[Entry]:
        return [self.insert_entry(owner_id, draft) for draft in drafts]

    def update_entry(
        self,
        owner_id: str,
        entry_id: str,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> Entry:
        record = self.get_entry(owner_id, entry_id)
        updated = record.with_content(title=title, body=body, categories=categories)
        self._entries[entry_id] = updated
        return updated

    def delete_entry(self, owner_id: str, entry_id: str) -> Entry:
        record = self.get_entry(owner_id, entry_id)
        del self._entries[entry_id]
        return record

    def reorder(self, owner_id: str, entry_ids: Sequence[str]) -> List[Entry]:
        records = [self._entries.get(entry_id) for entry_id in entry_ids]
        _validate_reorder_batch(
            entry_ids,
            {record.entry_id for record in records if record and record.owner_id == owner_id},
        )
        base = reorder_base(self._owned(owner_id), len(entry_ids))
        updated: List[Entry] = []
        for index, entry_id in enumerate(entry_ids):
            record = self._entries[entry_id].with_sort_key(base - index)
            self._entries[entry_id] = record
            updated.append(record)
        return updated

    def list_categories(self, owner_id: str) -> List[str]:
        owned = sort_for_display(self._owned(owner_id))
        return collect_categories(entry.categories for entry in owned)

    def ping(self) -> bool:
        return True

    def _owned(self, owner_id: str) -> List[Entry]:
        return [entry for entry in self._entries.values() if entry.owner_id == owner_id]


def build_entries_table(metadata: Optional[MetaData] = None) -> Table:
    """Table definition shared by the SQL gateway and schema migrations."""

    metadata = metadata or MetaData()
    return Table(
        ENTRIES_TABLE_NAME,
        metadata,
        Column("entry_id", String(length=36), primary_key=True),
        Column("owner_id", String(length=128), nullable=False),
        Column("title", Text(), nullable=False, server_default=""),
        Column("body", Text(), nullable=False, server_default=""),
        Column("categories", JSON(), nullable=False),
        Column("sort_key", BigInteger(), nullable=False, server_default=text("0")),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
        Index("ix_entries_owner_sort", "owner_id", "sort_key", "created_at"),
    )


class SqlEntryStoreGateway(EntryStoreGateway):
    """SQLAlchemy-backed adapter that persists entries (PostgreSQL in deployments)."""

    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        table: Optional[Table] = None,
    ) -> None:
        self._engine = engine or get_engine()
        if table is not None:
            self._entries = table
        else:
            self._entries = Table(
                ENTRIES_TABLE_NAME, MetaData(), autoload_with=self._engine
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_entries(self, owner_id: str, query: EntryQuery) -> EntryPage:
        table = self._entries
        conditions = self._build_conditions(owner_id, query)
        stmt = (
            select(table)
            .where(*conditions)
            .order_by(
                table.c.sort_key.desc(),
                table.c.created_at.desc(),
                table.c.entry_id.desc(),
            )
            .offset(max(query.offset, 0))
        )
        if query.limit is not None:
            stmt = stmt.limit(max(query.limit, 1))
        count_stmt = select(func.count()).select_from(table).where(*conditions)
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).mappings().all()
            total = int(conn.execute(count_stmt).scalar_one())
        return EntryPage(items=[_row_to_entry(row) for row in rows], total=total)

    def get_entry(self, owner_id: str, entry_id: str) -> Entry:
        with self._engine.begin() as conn:
            row = self._fetch_entry(conn, owner_id, entry_id)
        return _row_to_entry(row)

    def list_categories(self, owner_id: str) -> List[str]:
        table = self._entries
        stmt = (
            select(table.c.categories)
            .where(table.c.owner_id == owner_id)
            .order_by(table.c.sort_key.desc(), table.c.created_at.desc())
        )
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).scalars().all()
        return collect_categories(rows)

    def ping(self) -> bool:
        with self._engine.begin() as conn:
            conn.execute(select(func.count()).select_from(self._entries))
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert_entry(self, owner_id: str, draft: EntryDraft) -> Entry:
        return self.insert_many(owner_id, [draft])[0]

    def insert_many(self, owner_id: str, drafts: Sequence[EntryDraft]) -> List[Entry]:
        if not drafts:
            return []
        inserted: List[Entry] = []
        with self._engine.begin() as conn:
            next_key = self._max_sort_key(conn, owner_id) + 1
            for draft in drafts:
                sort_key = draft.sort_key
                if sort_key is None:
                    sort_key = next_key
                entry = Entry.new(
                    title=draft.title,
                    body=draft.body,
                    categories=draft.categories,
                    owner_id=owner_id,
                    sort_key=sort_key,
                    created_at=draft.created_at,
                )
                next_key = max(next_key, entry.sort_key + 1)
                conn.execute(insert(self._entries).values(**_entry_to_row(entry)))
                inserted.append(entry)
        return inserted

    def update_entry(
        self,
        owner_id: str,
        entry_id: str,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> Entry:
        with self._engine.begin() as conn:
            current = _row_to_entry(self._fetch_entry(conn, owner_id, entry_id))
            updated = current.with_content(
                title=title, body=body, categories=categories
            )
            conn.execute(
                update(self._entries)
                .where(self._entries.c.entry_id == entry_id)
                .values(
                    title=updated.title,
                    body=updated.body,
                    categories=list(updated.categories),
                    updated_at=updated.updated_at,
                )
            )
        return updated

    def delete_entry(self, owner_id: str, entry_id: str) -> Entry:
        with self._engine.begin() as conn:
            current = _row_to_entry(self._fetch_entry(conn, owner_id, entry_id))
            conn.execute(
                delete(self._entries).where(self._entries.c.entry_id == entry_id)
            )
        return current

    def reorder(self, owner_id: str, entry_ids: Sequence[str]) -> List[Entry]:
        table = self._entries
        with self._engine.begin() as conn:
            owned_ids = set(
                conn.execute(
                    select(table.c.entry_id).where(
                        table.c.owner_id == owner_id,
                        table.c.entry_id.in_(list(entry_ids)),
                    )
                ).scalars()
            )
            _validate_reorder_batch(entry_ids, owned_ids)
            base = self._max_sort_key(conn, owner_id) + block_spacing(len(entry_ids))
            for index, entry_id in enumerate(entry_ids):
                conn.execute(
                    update(table)
                    .where(table.c.entry_id == entry_id)
                    .values(sort_key=base - index)
                )
            rows = conn.execute(
                select(table).where(table.c.entry_id.in_(list(entry_ids)))
            ).mappings().all()
        by_id = {row["entry_id"]: _row_to_entry(row) for row in rows}
        return [by_id[entry_id] for entry_id in entry_ids]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _build_conditions(self, owner_id: str, query: EntryQuery) -> tuple:
        c = self._entries.c
        conditions: list[Any] = [c.owner_id == owner_id]
        if query.category:
            categories_text = cast(c.categories, Text)
            patterns = {
                _like_escape(json.dumps(query.category)),
                _like_escape(json.dumps(query.category, ensure_ascii=False)),
            }
            conditions.append(
                or_(
                    *(
                        categories_text.like(f"%{pattern}%", escape="\\")
                        for pattern in sorted(patterns)
                    )
                )
            )
        if query.created_from is not None:
            conditions.append(c.created_at >= range_start(query.created_from))
        if query.created_to is not None:
            conditions.append(c.created_at <= range_end(query.created_to))
        for term in query.terms:
            like_value = f"%{_like_escape(term)}%"
            conditions.append(
                or_(
                    func.lower(c.title).like(like_value, escape="\\"),
                    func.lower(c.body).like(like_value, escape="\\"),
                )
            )
        return tuple(conditions)

    def _max_sort_key(self, conn: Connection, owner_id: str) -> int:
        value = conn.execute(
            select(func.max(self._entries.c.sort_key)).where(
                self._entries.c.owner_id == owner_id
            )
        ).scalar_one()
        return max(int(value or 0), 0)

    def _fetch_entry(
        self, conn: Connection, owner_id: str, entry_id: str
    ) -> Mapping[str, Any]:
        stmt = select(self._entries).where(
            self._entries.c.entry_id == entry_id,
            self._entries.c.owner_id == owner_id,
        )
        row = conn.execute(stmt).mappings().first()
        if row is None:
            raise EntryNotFoundError(entry_id)
        return row


def build_entry_store_gateway(
    *,
    prefer_sql: bool = True,
    fallback_to_memory: bool = False,
) -> EntryStoreGateway:
    """Factory that returns the desired entry store implementation."""

    if prefer_sql:
        try:
            return SqlEntryStoreGateway()
        except Exception:
            if not fallback_to_memory:
                raise
            logger.warning(
                "sql_entry_store_unavailable_falling_back",
                exc_info=True,
            )
    return InMemoryEntryStoreGateway()


def _validate_reorder_batch(entry_ids: Sequence[str], owned_ids: set[str]) -> None:
    if len(set(entry_ids)) != len(entry_ids):
        raise ReorderRejectedError(
            "reorder ids must be unique", entry_ids=list(entry_ids)
        )
    unknown = [entry_id for entry_id in entry_ids if entry_id not in owned_ids]
    if unknown:
        raise ReorderRejectedError(
            "reorder names entries that do not exist for this owner",
            entry_ids=unknown,
        )


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _entry_to_row(entry: Entry) -> Dict[str, Any]:
    return {
        "entry_id": entry.entry_id,
        "owner_id": entry.owner_id,
        "title": entry.title,
        "body": entry.body,
        "categories": list(entry.categories),
        "sort_key": entry.sort_key,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at or entry.created_at,
    }


def _row_to_entry(row: Mapping[str, Any]) -> Entry:
    created_at = as_utc(row["created_at"])
    updated_at = row.get("updated_at")
    return Entry(
        entry_id=row["entry_id"],
        title=row.get("title") or "",
        body=row.get("body") or "",
        categories=tuple(normalize_categories(row.get("categories"))),
        created_at=created_at,
        sort_key=int(row.get("sort_key") or 0),
        owner_id=row["owner_id"],
        updated_at=as_utc(updated_at) if updated_at is not None else created_at,
    )
