"""Optimistic drag-to-reorder with reconciliation against the remote store.

A gesture is planned against the visible subsequence, committed to the
local list before any await, then persisted with one batched ``reorder``
call. When persistence fails for any reason the local list is discarded and
replaced by an authoritative re-fetch:

    STABLE -> REORDERING -> STABLE              (remote confirmed)
    STABLE -> REORDERING -> RESYNCING -> STABLE (remote failed)

Overlapping gestures are allowed. Every optimistic commit and every re-fetch
bumps a generation counter; with ``discard_stale_refresh`` enabled a re-fetch
that finishes after a newer gesture or re-fetch began is dropped instead of
overwriting it. Ordinary confirmed writes do not supersede a re-fetch: when
one lands while the list is in transit the list is fetched again, at most
``MAX_RESYNC_FETCHES`` times.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..domain.entries.ordering import plan_reorder
from ..infra.logging import get_logger
from ..infra.metrics import MetricsClient, get_metrics_client
from .credentials import CredentialProvider
from .errors import CredentialUnavailableError, RemoteStoreError
from .remote import RemoteEntryStore
from .state import EntryFilter, EntryListState, ListPhase

__all__ = ["ReorderCoordinator", "ReorderOutcome", "ReorderStatus", "ResyncStatus"]

logger = get_logger(__name__)

MAX_RESYNC_FETCHES = 3


class ReorderStatus(str, Enum):
    NOOP = "noop"
    CONFIRMED = "confirmed"
    RESYNCED = "resynced"


class ResyncStatus(str, Enum):
    APPLIED = "applied"
    DISCARDED = "discarded"
    FAILED = "failed"


@dataclass(frozen=True)
class ReorderOutcome:
    status: ReorderStatus
    ordered_ids: Tuple[str, ...] = ()
    resync: Optional[ResyncStatus] = None
    error: Optional[str] = None


class ReorderCoordinator:
    """Owns reorder gestures and failure reconciliation for one list."""

    def __init__(
        self,
        state: EntryListState,
        remote: RemoteEntryStore,
        credentials: CredentialProvider,
        *,
        discard_stale_refresh: bool = True,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._state = state
        self._remote = remote
        self._credentials = credentials
        self._discard_stale_refresh = discard_stale_refresh
        self._metrics = metrics or get_metrics_client()
        self._in_flight = 0
        self._resyncs = 0
        self._generation = 0

    @property
    def state(self) -> EntryListState:
        return self._state

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def apply_reorder(
        self,
        moved_id: str,
        source_index: int,
        target_index: int,
        *,
        entry_filter: Optional[EntryFilter] = None,
    ) -> ReorderOutcome:
        """Move ``moved_id`` from ``source_index`` to ``target_index`` of the visible list."""

        plan = plan_reorder(
            self._state.entries,
            self._state.visible(entry_filter),
            moved_id,
            source_index,
            target_index,
        )
        if plan is None:
            logger.debug(
                "reorder_ignored",
                extra={
                    "moved_id": moved_id,
                    "source_index": source_index,
                    "target_index": target_index,
                },
            )
            return ReorderOutcome(status=ReorderStatus.NOOP)

        # Optimistic commit happens before the first suspension point.
        self._state.commit(plan.merged)
        self._generation += 1
        self._in_flight += 1
        self._settle_phase()
        failure: Optional[RemoteStoreError] = None
        try:
            credential = await self._credentials.get_credential()
            if credential is None:
                raise CredentialUnavailableError()
            await self._remote.reorder(credential, plan.ordered_ids)
        except RemoteStoreError as exc:
            failure = exc
        finally:
            self._in_flight -= 1
            self._settle_phase()

        if failure is not None:
            self._metrics.increment("client_reorder_failed_total")
            logger.warning(
                "reorder_persist_failed",
                extra={
                    "moved_id": moved_id,
                    "block_size": len(plan.ordered_ids),
                    "status_code": failure.status_code,
                    "error_code": failure.error_code,
                    "error": failure.message,
                },
            )
            resync = await self.resync()
            return ReorderOutcome(
                status=ReorderStatus.RESYNCED,
                ordered_ids=plan.ordered_ids,
                resync=resync,
                error=failure.message,
            )

        self._metrics.increment("client_reorder_confirmed_total")
        logger.info(
            "reorder_persisted",
            extra={"moved_id": moved_id, "block_size": len(plan.ordered_ids)},
        )
        return ReorderOutcome(status=ReorderStatus.CONFIRMED, ordered_ids=plan.ordered_ids)

    async def apply_drop(
        self,
        active_id: str,
        over_id: Optional[str],
        *,
        entry_filter: Optional[EntryFilter] = None,
    ) -> ReorderOutcome:
        """Translate a drop of ``active_id`` onto ``over_id`` into visible indices."""

        if over_id is None or active_id == over_id:
            return ReorderOutcome(status=ReorderStatus.NOOP)
        ids = [entry.entry_id for entry in self._state.visible(entry_filter)]
        if active_id not in ids or over_id not in ids:
            return ReorderOutcome(status=ReorderStatus.NOOP)
        return await self.apply_reorder(
            active_id,
            ids.index(active_id),
            ids.index(over_id),
            entry_filter=entry_filter,
        )

    async def resync(self) -> ResyncStatus:
        """Drop local state and replace it with the remote store's list."""

        self._state.clear()
        self._generation += 1
        generation = self._generation
        self._resyncs += 1
        self._settle_phase()
        try:
            return await self._fetch_and_apply(generation)
        finally:
            self._resyncs -= 1
            self._settle_phase()

    async def _fetch_and_apply(self, generation: int) -> ResyncStatus:
        credential = await self._credentials.get_credential()
        if credential is None:
            logger.warning("resync_skipped_no_credential")
            return ResyncStatus.FAILED

        for attempt in range(1, MAX_RESYNC_FETCHES + 1):
            observed = self._state.revision
            try:
                entries = await self._remote.list_entries(credential)
            except RemoteStoreError as exc:
                self._metrics.increment("client_resync_failed_total")
                logger.warning(
                    "resync_fetch_failed",
                    extra={"status_code": exc.status_code, "error": exc.message},
                )
                return ResyncStatus.FAILED

            if self._discard_stale_refresh and self._generation != generation:
                self._metrics.increment("client_resync_discarded_total")
                logger.info(
                    "resync_discarded_stale",
                    extra={"generation": generation, "current": self._generation},
                )
                return ResyncStatus.DISCARDED
            if self._state.revision == observed or attempt == MAX_RESYNC_FETCHES:
                break
            # A confirmed write landed while the list was in transit; the
            # response may predate it.
            logger.info("resync_refetch_after_write", extra={"attempt": attempt})

        self._state.commit(entries)
        logger.info("resync_applied", extra={"count": len(entries)})
        return ResyncStatus.APPLIED

    def _settle_phase(self) -> None:
        if self._resyncs:
            self._state.phase = ListPhase.RESYNCING
        elif self._in_flight:
            self._state.phase = ListPhase.REORDERING
        else:
            self._state.phase = ListPhase.STABLE
