"""Entry service orchestrating persistence, ordering and image cleanup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ...infra.object_store import ImageStore, ObjectStoreError, owned_object_paths
from .gateway import EntryPage, EntryQuery, EntryStoreGateway
from .images import extract_image_urls, removed_image_urls
from .models import Entry, EntryDraft
from .transfer import build_export_document, parse_import_document

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImageCleanupResult:
    deleted: int
    paths: List[str] = field(default_factory=list)


class EntryService:
    """Owner-scoped entry operations used by the HTTP layer."""

    def __init__(
        self,
        *,
        gateway: EntryStoreGateway,
        image_store: ImageStore,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._gateway = gateway
        self._image_store = image_store
        self._metrics = metrics or get_metrics_client()

    @property
    def gateway(self) -> EntryStoreGateway:
        return self._gateway

    # ------------------------------------------------------------------
    # Entry CRUD
    # ------------------------------------------------------------------
    def list(self, owner_id: str, query: EntryQuery) -> EntryPage:
        return self._gateway.list_entries(owner_id, query)

    def get(self, owner_id: str, entry_id: str) -> Entry:
        return self._gateway.get_entry(owner_id, entry_id)

    def categories(self, owner_id: str) -> List[str]:
        return self._gateway.list_categories(owner_id)

    def create(self, owner_id: str, draft: EntryDraft) -> Entry:
        entry = self._gateway.insert_entry(owner_id, draft)
        self._metrics.increment("entries_created_total")
        logger.info(
            "entry_created",
            extra={
                "entry_id": entry.entry_id,
                "owner_id": owner_id,
                "sort_key": entry.sort_key,
            },
        )
        return entry

    def create_many(self, owner_id: str, drafts: Sequence[EntryDraft]) -> List[Entry]:
        """Insert a batch in one transaction; drafts without a key stack above the max."""

        if not drafts:
            return []
        inserted = self._gateway.insert_many(owner_id, list(drafts))
        self._metrics.increment("entries_created_total", len(inserted))
        logger.info(
            "entries_created",
            extra={
                "owner_id": owner_id,
                "count": len(inserted),
                "top_sort_key": max(entry.sort_key for entry in inserted),
            },
        )
        return inserted

    def update(
        self,
        owner_id: str,
        entry_id: str,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> Entry:
        before = self._gateway.get_entry(owner_id, entry_id)
        updated = self._gateway.update_entry(
            owner_id, entry_id, title=title, body=body, categories=categories
        )
        self._metrics.increment("entries_updated_total")
        if body is not None:
            removed = removed_image_urls(before.body, updated.body)
            if removed:
                self._cleanup_quietly(removed, owner_id, entry_id=entry_id)
        return updated

    def delete(self, owner_id: str, entry_id: str) -> Entry:
        target = self._gateway.get_entry(owner_id, entry_id)
        urls = extract_image_urls(target.body)
        if urls:
            self._cleanup_quietly(urls, owner_id, entry_id=entry_id)
        deleted = self._gateway.delete_entry(owner_id, entry_id)
        self._metrics.increment("entries_deleted_total")
        logger.info(
            "entry_deleted",
            extra={"entry_id": entry_id, "owner_id": owner_id, "images": len(urls)},
        )
        return deleted

    def reorder(self, owner_id: str, entry_ids: Sequence[str]) -> List[Entry]:
        self._metrics.increment("reorder_attempt_total")
        updated = self._gateway.reorder(owner_id, list(entry_ids))
        self._metrics.increment("reorder_success_total")
        logger.info(
            "entries_reordered",
            extra={
                "owner_id": owner_id,
                "count": len(updated),
                "top_sort_key": updated[0].sort_key if updated else None,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------
    def export_document(self, owner_id: str) -> Dict[str, Any]:
        page = self._gateway.list_entries(owner_id, EntryQuery())
        return build_export_document(page.items)

    def import_document(self, owner_id: str, payload: Any) -> List[Entry]:
        existing = self._gateway.list_entries(owner_id, EntryQuery()).items
        drafts = parse_import_document(payload, existing=existing)
        if not drafts:
            return []
        inserted = self._gateway.insert_many(owner_id, drafts)
        self._metrics.increment("entries_imported_total", len(inserted))
        logger.info(
            "entries_imported",
            extra={"owner_id": owner_id, "count": len(inserted)},
        )
        return inserted

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------
    def upload_image(
        self,
        data: bytes,
        owner_id: str,
        *,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        url = self._image_store.upload(
            data, owner_id, filename=filename, content_type=content_type
        )
        self._metrics.increment("images_uploaded_total")
        return url

    def cleanup_images(self, urls: Sequence[str], owner_id: str) -> ImageCleanupResult:
        """Remove images that belong to ``owner_id``; foreign URLs are ignored."""

        paths = owned_object_paths(urls, owner_id, self._image_store.bucket)
        if not paths:
            return ImageCleanupResult(deleted=0, paths=[])
        deleted = self._image_store.delete_paths(paths)
        self._metrics.increment("images_deleted_total", deleted)
        return ImageCleanupResult(deleted=deleted, paths=paths)

    def _cleanup_quietly(
        self, urls: Sequence[str], owner_id: str, *, entry_id: str
    ) -> None:
        try:
            result = self.cleanup_images(urls, owner_id)
        except ObjectStoreError:
            self._metrics.increment("image_cleanup_failed_total")
            logger.warning(
                "entry_image_cleanup_failed",
                extra={"entry_id": entry_id, "owner_id": owner_id, "urls": list(urls)},
                exc_info=True,
            )
            return
        logger.info(
            "entry_image_cleanup",
            extra={
                "entry_id": entry_id,
                "owner_id": owner_id,
                "deleted": result.deleted,
            },
        )
