"""JSON export/import of learning log entries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ImportFormatError
from .models import Entry, EntryDraft, normalize_categories, utcnow
from .ordering import sort_for_display

__all__ = [
    "DEFAULT_IMPORT_TITLE",
    "build_export_document",
    "export_filename",
    "parse_import_document",
]

DEFAULT_IMPORT_TITLE = "(no title)"


def build_export_document(
    entries: Sequence[Entry], *, timestamp: Optional[datetime] = None
) -> Dict[str, Any]:
    """Serialize entries in display order with an export envelope."""

    items = [
        {
            "id": entry.entry_id,
            "title": entry.title,
            "body": entry.body,
            "created_at": entry.created_at.isoformat(),
            "categories": normalize_categories(entry.categories),
            "sort_key": entry.sort_key,
        }
        for entry in sort_for_display(entries)
    ]
    return {
        "exported_at": (timestamp or utcnow()).isoformat(),
        "count": len(items),
        "items": items,
    }


def export_filename(timestamp: Optional[datetime] = None) -> str:
    ts = timestamp or utcnow()
    return f"learning_logs_{ts:%Y-%m-%d}.json"


def parse_import_document(
    payload: Any,
    *,
    existing: Sequence[Entry] = (),
    timestamp: Optional[datetime] = None,
) -> List[EntryDraft]:
    """Turn an export document into drafts ready for a single batch insert.

    Accepts ``{"items": [...]}`` or a bare list. Every draft gets a key above
    the highest existing key, and document order is kept as display order.
    Raises ``ImportFormatError`` before anything is written when the shape is
    wrong.
    """

    if isinstance(payload, Mapping) and isinstance(payload.get("items"), list):
        items = payload["items"]
    elif isinstance(payload, list):
        items = payload
    else:
        raise ImportFormatError("import document must be a list or contain an 'items' list")

    now = timestamp or utcnow()
    highest = max([0, *(entry.sort_key for entry in existing)])
    total = len(items)
    drafts: List[EntryDraft] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise ImportFormatError(f"item {index} must be an object")
        raw_categories = item.get("categories")
        drafts.append(
            EntryDraft(
                title=_text(item.get("title"), "").strip() or DEFAULT_IMPORT_TITLE,
                body=_text(item.get("body", item.get("memo")), ""),
                categories=tuple(
                    normalize_categories(
                        raw_categories if isinstance(raw_categories, list) else None
                    )
                ),
                created_at=_parse_timestamp(
                    item.get("created_at", item.get("date")), now, index=index
                ),
                sort_key=highest + (total - index),
            )
        )
    return drafts


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    return str(value)


def _parse_timestamp(value: Any, default: datetime, *, index: int) -> datetime:
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ImportFormatError(f"item {index} has a non-string timestamp")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ImportFormatError(
            f"item {index} has an invalid timestamp: {value!r}"
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
