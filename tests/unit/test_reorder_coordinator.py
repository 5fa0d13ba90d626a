"""Tests for optimistic reorder and failure reconciliation."""

from __future__ import annotations

from datetime import datetime

import anyio
import pytest

from learnlog.app.client import coordinator as coordinator_module
from learnlog.app.client.coordinator import ReorderCoordinator, ReorderStatus, ResyncStatus
from learnlog.app.client.credentials import StaticCredentialProvider
from learnlog.app.client.remote import entry_from_payload
from learnlog.app.client.state import EntryFilter, EntryListState, ListPhase
from learnlog.app.infra.metrics import InMemoryMetricsClient
from tests.helpers.logging import RecordingLogger, assert_extra_contains, find_log
from tests.helpers.remote import CREDENTIAL, FakeRemoteEntryStore

pytestmark = [pytest.mark.client_core, pytest.mark.anyio]


@pytest.fixture()
def remote() -> FakeRemoteEntryStore:
    store = FakeRemoteEntryStore()
    for title, key in (("A", 40), ("B", 30), ("C", 20), ("D", 10)):
        store.seed(title, key, categories=("Visible",))
    store.seed("hidden-1", 300, categories=("Other",))
    store.seed("hidden-2", 200, categories=("Other",))
    return store


@pytest.fixture()
def state(remote: FakeRemoteEntryStore) -> EntryListState:
    return EntryListState(remote.snapshot())


@pytest.fixture()
def metrics() -> InMemoryMetricsClient:
    return InMemoryMetricsClient()


@pytest.fixture()
def coordinator(state, remote, metrics) -> ReorderCoordinator:
    return ReorderCoordinator(
        state, remote, StaticCredentialProvider(CREDENTIAL), metrics=metrics
    )


VISIBLE = EntryFilter(category="Visible")


def _titles(entries) -> list[str]:
    return [entry.title for entry in entries]


def _id(state: EntryListState, title: str) -> str:
    return next(entry.entry_id for entry in state.entries if entry.title == title)


async def test_reorder_commits_optimistically_and_persists(coordinator, state, remote):
    outcome = await coordinator.apply_reorder(_id(state, "C"), 2, 0, entry_filter=VISIBLE)

    assert outcome.status is ReorderStatus.CONFIRMED
    assert _titles(state.visible(VISIBLE)) == ["C", "A", "B", "D"]
    keys = {entry.title: entry.sort_key for entry in state.entries}
    assert keys["C"] > keys["A"] > keys["B"] > keys["D"] > keys["hidden-1"]
    assert _titles(state.entries)[:4] == ["C", "A", "B", "D"]
    assert remote.calls == [("reorder", outcome.ordered_ids)]
    assert _titles(remote.snapshot())[:4] == ["C", "A", "B", "D"]
    assert state.phase is ListPhase.STABLE


async def test_local_state_changes_before_remote_call_resolves(coordinator, state, remote):
    gate = anyio.Event()
    remote.gates["reorder"] = gate
    before = state.revision
    results = []

    async def drag() -> None:
        results.append(
            await coordinator.apply_reorder(_id(state, "D"), 3, 0, entry_filter=VISIBLE)
        )

    async with anyio.create_task_group() as tg:
        tg.start_soon(drag)
        await anyio.wait_all_tasks_blocked()
        assert _titles(state.visible(VISIBLE)) == ["D", "A", "B", "C"]
        assert state.phase is ListPhase.REORDERING
        assert state.revision == before + 1
        assert coordinator.in_flight == 1
        gate.set()

    assert results[0].status is ReorderStatus.CONFIRMED
    assert state.phase is ListPhase.STABLE
    assert coordinator.in_flight == 0


@pytest.mark.parametrize(
    "moved, source, target",
    [("A", 0, 0), ("A", 0, 9), ("B", 0, 1), ("A", -1, 0)],
)
async def test_noop_gestures_change_nothing(coordinator, state, remote, moved, source, target):
    before = (state.entries, state.revision)

    outcome = await coordinator.apply_reorder(
        _id(state, moved), source, target, entry_filter=VISIBLE
    )

    assert outcome.status is ReorderStatus.NOOP
    assert (state.entries, state.revision) == before
    assert remote.calls == []


async def test_rejected_reorder_resyncs_to_authoritative_list(
    coordinator, state, remote, metrics, monkeypatch
):
    log = RecordingLogger()
    monkeypatch.setattr(coordinator_module, "logger", log)
    remote.fail.add("reorder")

    outcome = await coordinator.apply_reorder(_id(state, "C"), 2, 0, entry_filter=VISIBLE)

    assert outcome.status is ReorderStatus.RESYNCED
    assert outcome.resync is ResyncStatus.APPLIED
    assert state.entries == tuple(remote.snapshot())
    assert _titles(state.visible(VISIBLE)) == ["A", "B", "C", "D"]
    assert remote.operations() == ["reorder", "list_entries"]
    assert state.phase is ListPhase.STABLE
    failure = find_log(log.records, level="warning", message="reorder_persist_failed")
    assert_extra_contains(failure, block_size=4, status_code=500)
    assert metrics.snapshot()["client_reorder_failed_total"] == 1


async def test_missing_credential_falls_back_to_resync(state, remote):
    coordinator = ReorderCoordinator(
        state, remote, StaticCredentialProvider(None), metrics=InMemoryMetricsClient()
    )

    outcome = await coordinator.apply_reorder(_id(state, "B"), 1, 0, entry_filter=VISIBLE)

    assert outcome.status is ReorderStatus.RESYNCED
    assert outcome.resync is ResyncStatus.FAILED
    assert remote.calls == []
    assert state.entries == ()
    assert state.phase is ListPhase.STABLE


async def test_failed_refetch_leaves_list_empty(coordinator, state, remote):
    remote.fail.update({"reorder", "list_entries"})

    outcome = await coordinator.apply_reorder(_id(state, "B"), 1, 0, entry_filter=VISIBLE)

    assert outcome.resync is ResyncStatus.FAILED
    assert state.entries == ()
    assert state.phase is ListPhase.STABLE


async def test_apply_drop_maps_ids_to_visible_indices(coordinator, state):
    outcome = await coordinator.apply_drop(
        _id(state, "D"), _id(state, "B"), entry_filter=VISIBLE
    )
    same = await coordinator.apply_drop(_id(state, "A"), _id(state, "A"))
    nowhere = await coordinator.apply_drop(_id(state, "A"), None)
    hidden = await coordinator.apply_drop(
        _id(state, "A"), _id(state, "hidden-1"), entry_filter=VISIBLE
    )

    assert outcome.status is ReorderStatus.CONFIRMED
    assert _titles(state.visible(VISIBLE)) == ["A", "D", "B", "C"]
    assert {same.status, nowhere.status, hidden.status} == {ReorderStatus.NOOP}


async def test_refetch_is_discarded_when_a_newer_resync_supersedes_it(
    coordinator, state, remote, metrics
):
    gate = anyio.Event()
    remote.gates["list_entries"] = gate
    results = []

    async def run_resync() -> None:
        results.append(await coordinator.resync())

    async with anyio.create_task_group() as tg:
        tg.start_soon(run_resync)
        await anyio.wait_all_tasks_blocked()
        assert state.phase is ListPhase.RESYNCING
        tg.start_soon(run_resync)
        await anyio.wait_all_tasks_blocked()
        gate.set()

    assert sorted(results) == sorted([ResyncStatus.DISCARDED, ResyncStatus.APPLIED])
    assert state.entries == tuple(remote.snapshot())
    assert state.phase is ListPhase.STABLE
    assert metrics.snapshot()["client_resync_discarded_total"] == 1


async def test_write_during_refetch_triggers_another_fetch(
    coordinator, state, remote, monkeypatch
):
    log = RecordingLogger()
    monkeypatch.setattr(coordinator_module, "logger", log)
    gate = anyio.Event()
    remote.gates["list_entries"] = gate
    results = []

    async def run_resync() -> None:
        results.append(await coordinator.resync())

    async with anyio.create_task_group() as tg:
        tg.start_soon(run_resync)
        await anyio.wait_all_tasks_blocked()
        newer = remote.seed("added while resyncing", 999)
        state.commit([newer])
        gate.set()

    assert results == [ResyncStatus.APPLIED]
    assert state.entries == tuple(remote.snapshot())
    assert len(state.entries) == 7
    assert remote.operations() == ["list_entries", "list_entries"]
    record = find_log(log.records, level="info", message="resync_refetch_after_write")
    assert_extra_contains(record, attempt=1)


async def test_last_settled_wins_when_stale_check_disabled(state, remote):
    coordinator = ReorderCoordinator(
        state,
        remote,
        StaticCredentialProvider(CREDENTIAL),
        discard_stale_refresh=False,
        metrics=InMemoryMetricsClient(),
    )
    gate = anyio.Event()
    remote.gates["list_entries"] = gate
    results = []

    async def run_resync() -> None:
        results.append(await coordinator.resync())

    async with anyio.create_task_group() as tg:
        tg.start_soon(run_resync)
        await anyio.wait_all_tasks_blocked()
        state.commit([])
        gate.set()

    assert results == [ResyncStatus.APPLIED]
    assert len(state.entries) == 6


async def test_overlapping_failed_reorders_settle_on_authoritative_state(
    coordinator, state, remote
):
    remote.fail.add("reorder")
    first_gate = anyio.Event()
    remote.gates["reorder"] = first_gate
    outcomes = []

    async def drag(title: str, source: int) -> None:
        outcomes.append(
            await coordinator.apply_reorder(
                _id(state, title), source, 0, entry_filter=VISIBLE
            )
        )

    async with anyio.create_task_group() as tg:
        tg.start_soon(drag, "C", 2)
        await anyio.wait_all_tasks_blocked()
        tg.start_soon(drag, "D", 3)
        await anyio.wait_all_tasks_blocked()
        assert coordinator.in_flight == 2
        first_gate.set()

    assert {outcome.status for outcome in outcomes} == {ReorderStatus.RESYNCED}
    assert ResyncStatus.APPLIED in {outcome.resync for outcome in outcomes}
    assert state.entries == tuple(remote.snapshot())
    assert state.phase is ListPhase.STABLE


async def test_naive_date_bounds_filter_without_error(coordinator, state):
    naive = EntryFilter(category="Visible", created_from=datetime(2000, 1, 1))

    outcome = await coordinator.apply_reorder(_id(state, "B"), 1, 0, entry_filter=naive)

    assert outcome.status is ReorderStatus.CONFIRMED
    assert _titles(state.visible(VISIBLE)) == ["B", "A", "C", "D"]


async def test_malformed_refetch_payload_is_reported_not_raised(state, metrics):
    class MalformedListStore(FakeRemoteEntryStore):
        async def list_entries(self, credential, *, category=None, search=None):
            await self._enter("list_entries")
            return [entry_from_payload({"id": "x", "title": "t"})]

    remote = MalformedListStore()
    remote.fail.add("reorder")
    coordinator = ReorderCoordinator(
        state, remote, StaticCredentialProvider(CREDENTIAL), metrics=metrics
    )

    outcome = await coordinator.apply_reorder(_id(state, "B"), 1, 0, entry_filter=VISIBLE)

    assert outcome.status is ReorderStatus.RESYNCED
    assert outcome.resync is ResyncStatus.FAILED
    assert state.entries == ()
    assert state.phase is ListPhase.STABLE
    assert metrics.snapshot()["client_resync_failed_total"] == 1


async def test_unexpected_persist_error_still_settles_phase(state, metrics):
    class BrokenReorderStore(FakeRemoteEntryStore):
        async def reorder(self, credential, entry_ids):
            raise RuntimeError("socket closed")

    coordinator = ReorderCoordinator(
        state,
        BrokenReorderStore(),
        StaticCredentialProvider(CREDENTIAL),
        metrics=metrics,
    )

    with pytest.raises(RuntimeError):
        await coordinator.apply_reorder(_id(state, "B"), 1, 0, entry_filter=VISIBLE)

    assert coordinator.in_flight == 0
    assert state.phase is ListPhase.STABLE
