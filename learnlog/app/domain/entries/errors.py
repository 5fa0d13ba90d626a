"""Entry store exceptions surfaced to API handlers and the client core."""

from __future__ import annotations

from typing import Any, Dict, Sequence


class EntryStoreError(Exception):
    """Base class for entry persistence failures."""

    error_code = "LL-STORAGE-ERROR"

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EntryNotFoundError(EntryStoreError, KeyError):
    error_code = "LL-NOT-FOUND"

    def __init__(self, entry_id: str) -> None:
        super().__init__(
            f"Entry '{entry_id}' not found", details={"entry_id": entry_id}
        )
        self.entry_id = entry_id

    def __str__(self) -> str:
        return self.message


class ReorderRejectedError(EntryStoreError):
    """Raised when a reorder batch names ids the owner cannot reorder."""

    error_code = "LL-INVALID-REQUEST"

    def __init__(self, message: str, *, entry_ids: Sequence[str] = ()) -> None:
        super().__init__(message, details={"entry_ids": list(entry_ids)})


class ImportFormatError(ValueError):
    """Raised when an import document does not have the expected shape."""
