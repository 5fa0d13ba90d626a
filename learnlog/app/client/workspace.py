"""List-page behaviors built around the shared entry list state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..domain.entries.errors import ImportFormatError
from ..domain.entries.gateway import collect_categories
from ..domain.entries.images import extract_image_urls, removed_image_urls
from ..domain.entries.models import Entry, EntryDraft, normalize_categories, utcnow
from ..domain.entries.ordering import next_sort_key
from ..domain.entries.transfer import build_export_document, parse_import_document
from ..infra.logging import get_logger
from ..infra.metrics import MetricsClient, get_metrics_client
from .coordinator import ReorderCoordinator, ReorderOutcome, ResyncStatus
from .credentials import Credential, CredentialProvider
from .errors import RemoteStoreError
from .remote import ImageCleanupClient, RemoteEntryStore
from .state import EntryFilter, EntryListState, ListPhase

__all__ = ["LogWorkspace"]

logger = get_logger(__name__)


class LogWorkspace:
    """Facade the UI layer talks to.

    Reads and writes go to the remote store; the local list changes only
    after the store confirms, except for reorder which is optimistic and
    handled by :class:`ReorderCoordinator`. Without a credential every
    operation logs and does nothing.
    """

    def __init__(
        self,
        remote: RemoteEntryStore,
        credentials: CredentialProvider,
        *,
        image_cleanup: Optional[ImageCleanupClient] = None,
        state: Optional[EntryListState] = None,
        discard_stale_refresh: bool = True,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._remote = remote
        self._credentials = credentials
        self._image_cleanup = image_cleanup
        self._metrics = metrics or get_metrics_client()
        self.state = state or EntryListState()
        self.entry_filter = EntryFilter()
        self.coordinator = ReorderCoordinator(
            self.state,
            remote,
            credentials,
            discard_stale_refresh=discard_stale_refresh,
            metrics=self._metrics,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def visible(self) -> tuple[Entry, ...]:
        return self.state.visible(self.entry_filter)

    def categories(self) -> List[str]:
        return collect_categories(entry.categories for entry in self.state.entries)

    async def refresh(self) -> bool:
        """Replace the local list with the store's; unchanged on failure."""

        credential = await self._credential("refresh")
        if credential is None:
            return False
        try:
            entries = await self._remote.list_entries(credential)
        except RemoteStoreError as exc:
            logger.warning(
                "entries_refresh_failed",
                extra={"status_code": exc.status_code, "error": exc.message},
            )
            return False
        self.state.commit(entries)
        logger.info("entries_refreshed", extra={"count": len(entries)})
        return True

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    async def reorder(
        self, moved_id: str, source_index: int, target_index: int
    ) -> ReorderOutcome:
        return await self.coordinator.apply_reorder(
            moved_id, source_index, target_index, entry_filter=self.entry_filter
        )

    async def drop(self, active_id: str, over_id: Optional[str]) -> ReorderOutcome:
        return await self.coordinator.apply_drop(
            active_id, over_id, entry_filter=self.entry_filter
        )

    async def resync(self) -> ResyncStatus:
        return await self.coordinator.resync()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def add_entry(
        self,
        title: str,
        body: str = "",
        categories: Sequence[str] = (),
        *,
        new_category: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Optional[Entry]:
        if not title.strip():
            logger.debug("entry_add_skipped_blank_title")
            return None
        labels = list(categories)
        extra_label = (new_category or "").strip()
        if extra_label and extra_label not in labels:
            labels.append(extra_label)
        credential = await self._credential("add_entry")
        if credential is None:
            return None

        # The list is empty while a resync is in flight; the store then
        # assigns max + 1 itself.
        resyncing = self.state.phase is ListPhase.RESYNCING
        draft = EntryDraft(
            title=title,
            body=body,
            categories=tuple(normalize_categories(labels or None)),
            created_at=created_at,
            sort_key=None if resyncing else next_sort_key(self.state.entries),
        )
        try:
            entry = await self._remote.insert(credential, draft)
        except RemoteStoreError as exc:
            logger.warning(
                "entry_add_failed",
                extra={"status_code": exc.status_code, "error": exc.message},
            )
            return None
        self.state.commit([*self.state.entries, entry])
        self._metrics.increment("client_entries_created_total")
        logger.info(
            "entry_added", extra={"entry_id": entry.entry_id, "sort_key": entry.sort_key}
        )
        return entry

    async def edit_entry(
        self,
        entry_id: str,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> Optional[Entry]:
        before = self.state.find(entry_id)
        if before is None:
            logger.warning("entry_edit_unknown", extra={"entry_id": entry_id})
            return None
        if title is not None and not title.strip():
            logger.debug("entry_edit_skipped_blank_title", extra={"entry_id": entry_id})
            return None
        credential = await self._credential("edit_entry")
        if credential is None:
            return None

        fields: Dict[str, Any] = {}
        if title is not None:
            fields["title"] = title
        if body is not None:
            fields["body"] = body
        if categories is not None:
            fields["categories"] = normalize_categories(categories)
        if not fields:
            return before
        try:
            updated = await self._remote.update(credential, entry_id, fields)
        except RemoteStoreError as exc:
            logger.warning(
                "entry_edit_failed",
                extra={
                    "entry_id": entry_id,
                    "status_code": exc.status_code,
                    "error": exc.message,
                },
            )
            return None
        self.state.commit(
            updated if entry.entry_id == entry_id else entry
            for entry in self.state.entries
        )
        if body is not None:
            await self._delete_images(
                removed_image_urls(before.body, updated.body), credential, entry_id
            )
        return updated

    async def delete_entry(self, entry_id: str) -> bool:
        target = self.state.find(entry_id)
        if target is None:
            logger.warning("entry_delete_unknown", extra={"entry_id": entry_id})
            return False
        credential = await self._credential("delete_entry")
        if credential is None:
            return False

        await self._delete_images(extract_image_urls(target.body), credential, entry_id)
        try:
            await self._remote.delete(credential, entry_id)
        except RemoteStoreError as exc:
            logger.warning(
                "entry_delete_failed",
                extra={
                    "entry_id": entry_id,
                    "status_code": exc.status_code,
                    "error": exc.message,
                },
            )
            return False
        self.state.commit(
            entry for entry in self.state.entries if entry.entry_id != entry_id
        )
        self._metrics.increment("client_entries_deleted_total")
        return True

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------
    def export_document(self, *, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        return build_export_document(self.state.entries, timestamp=timestamp)

    async def import_document(self, payload: Any, *, strict: bool = False) -> int:
        """Insert every item of an export document in one batch.

        Returns the number of inserted rows. A malformed document is
        rejected before any remote call; with ``strict`` the
        ``ImportFormatError`` is re-raised instead of only logged.
        """

        now = utcnow()
        try:
            drafts = parse_import_document(
                payload, existing=self.state.entries, timestamp=now
            )
        except ImportFormatError as exc:
            logger.warning("entries_import_rejected", extra={"error": str(exc)})
            if strict:
                raise
            return 0
        if not drafts:
            return 0
        credential = await self._credential("import_document")
        if credential is None:
            return 0
        if self.state.phase is ListPhase.RESYNCING:
            # Keys must clear the stored maximum, not the emptied local list.
            try:
                existing = await self._remote.list_entries(credential)
            except RemoteStoreError as exc:
                logger.warning(
                    "entries_import_failed",
                    extra={"status_code": exc.status_code, "error": exc.message},
                )
                return 0
            drafts = parse_import_document(payload, existing=existing, timestamp=now)
        try:
            inserted = await self._remote.insert_many(credential, drafts)
        except RemoteStoreError as exc:
            logger.warning(
                "entries_import_failed",
                extra={"status_code": exc.status_code, "error": exc.message},
            )
            return 0
        self._metrics.increment("client_entries_imported_total", len(inserted))
        logger.info("entries_imported", extra={"count": len(inserted)})
        await self.refresh()
        return len(inserted)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _credential(self, operation: str) -> Optional[Credential]:
        credential = await self._credentials.get_credential()
        if credential is None:
            logger.warning("operation_skipped_no_credential", extra={"operation": operation})
        return credential

    async def _delete_images(
        self, urls: List[str], credential: Credential, entry_id: str
    ) -> None:
        if not urls or self._image_cleanup is None:
            return
        try:
            deleted = await self._image_cleanup.delete_images(urls, credential.owner_id)
        except RemoteStoreError:
            self._metrics.increment("client_image_cleanup_failed_total")
            logger.warning(
                "entry_image_cleanup_failed",
                extra={"entry_id": entry_id, "urls": urls},
                exc_info=True,
            )
            return
        logger.info(
            "entry_image_cleanup", extra={"entry_id": entry_id, "deleted": deleted}
        )
