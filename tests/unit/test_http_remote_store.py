"""Tests for the httpx remote store against the in-process API."""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI

from learnlog.app.api.dependencies import get_entry_service
from learnlog.app.api.routers import entries, images
from learnlog.app.client import remote as remote_module
from learnlog.app.client.coordinator import ReorderStatus
from learnlog.app.client.credentials import Credential, StaticCredentialProvider
from learnlog.app.client.errors import RemoteStoreError
from learnlog.app.client.remote import HttpImageCleanupClient, HttpRemoteEntryStore
from learnlog.app.client.workspace import LogWorkspace
from learnlog.app.config import ClientConfig
from learnlog.app.domain.entries.gateway import EntryQuery, InMemoryEntryStoreGateway
from learnlog.app.domain.entries.models import UNCATEGORIZED, EntryDraft
from learnlog.app.domain.entries.service import EntryService
from learnlog.app.infra.metrics import InMemoryMetricsClient
from learnlog.app.infra.object_store import InMemoryImageStore

pytestmark = [pytest.mark.client_core, pytest.mark.anyio]

CREDENTIAL = Credential(token="token-1", owner_id="owner-1")
CONFIG = ClientConfig(base_url="http://testserver", timeout_seconds=5)


@pytest.fixture()
def image_store() -> InMemoryImageStore:
    return InMemoryImageStore()


@pytest.fixture()
def service(image_store) -> EntryService:
    return EntryService(
        gateway=InMemoryEntryStoreGateway(),
        image_store=image_store,
        metrics=InMemoryMetricsClient(),
    )


@pytest.fixture()
def app(service) -> FastAPI:
    application = FastAPI()
    application.include_router(entries.router)
    application.include_router(images.router)
    application.dependency_overrides[get_entry_service] = lambda: service
    return application


def _http_client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url=CONFIG.base_url
    )


async def test_crud_round_trip_through_http(app, service):
    async with HttpRemoteEntryStore(CONFIG, client=_http_client(app)) as store:
        created = await store.insert(
            CREDENTIAL, EntryDraft(title="Heaps", body="<p>x</p>", categories=("Algo",))
        )
        batch = await store.insert_many(
            CREDENTIAL, [EntryDraft(title="one", sort_key=10), EntryDraft(title="two")]
        )
        updated = await store.update(
            CREDENTIAL, created.entry_id, {"title": "Binary heaps", "categories": []}
        )
        await store.delete(CREDENTIAL, batch[1].entry_id)
        listed = await store.list_entries(CREDENTIAL)

    assert created.sort_key == 1 and created.owner_id == "owner-1"
    assert [entry.sort_key for entry in batch] == [10, 11]
    assert updated.title == "Binary heaps"
    assert updated.categories == (UNCATEGORIZED,)
    assert [entry.title for entry in listed] == ["one", "Binary heaps"]
    assert service.list("owner-1", EntryQuery()).total == 2


async def test_list_entries_follows_pagination(app, service, monkeypatch):
    monkeypatch.setattr(remote_module, "LIST_PAGE_SIZE", 2)
    for key in range(5):
        service.create("owner-1", EntryDraft(title=f"e{key}", sort_key=key))

    async with HttpRemoteEntryStore(CONFIG, client=_http_client(app)) as store:
        listed = await store.list_entries(CREDENTIAL)
        filtered = await store.list_entries(CREDENTIAL, search="E3")

    assert [entry.title for entry in listed] == ["e4", "e3", "e2", "e1", "e0"]
    assert [entry.title for entry in filtered] == ["e3"]


async def test_api_errors_become_remote_store_errors(app, service):
    mine = service.create("owner-1", EntryDraft(title="mine", sort_key=1)).entry_id

    async with HttpRemoteEntryStore(CONFIG, client=_http_client(app)) as store:
        with pytest.raises(RemoteStoreError) as rejected:
            await store.reorder(CREDENTIAL, [mine, "missing"])
        with pytest.raises(RemoteStoreError) as missing:
            await store.delete(CREDENTIAL, "missing")

    assert rejected.value.status_code == 422
    assert rejected.value.error_code == "LL-INVALID-REQUEST"
    assert rejected.value.details == {"entry_ids": ["missing"]}
    assert missing.value.status_code == 404
    assert missing.value.error_code == "LL-NOT-FOUND"


async def test_transport_failures_become_remote_store_errors():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(refuse), base_url=CONFIG.base_url
    )
    async with HttpRemoteEntryStore(CONFIG, client=client) as store:
        with pytest.raises(RemoteStoreError) as excinfo:
            await store.list_entries(CREDENTIAL)

    assert excinfo.value.status_code is None


async def test_malformed_list_payload_becomes_remote_store_error():
    def malformed(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"items": [{"id": "x", "title": "t"}], "pagination": {"total_pages": 1}},
        )

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(malformed), base_url=CONFIG.base_url
    )
    async with HttpRemoteEntryStore(CONFIG, client=client) as store:
        with pytest.raises(RemoteStoreError, match="Malformed entry"):
            await store.list_entries(CREDENTIAL)


async def test_requests_carry_bearer_and_owner_headers():
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(record), base_url=CONFIG.base_url
    )
    async with HttpRemoteEntryStore(CONFIG, client=client) as store:
        await store.delete(CREDENTIAL, "abc")

    assert seen[0].headers["authorization"] == "Bearer token-1"
    assert seen[0].headers["x-owner-id"] == "owner-1"
    assert seen[0].url.path == "/api/entries/abc"


async def test_workspace_reorder_and_cleanup_against_api(app, service, image_store):
    url = image_store.upload(b"png", "owner-1", filename="a.png")
    for title, key in (("A", 3), ("B", 2), ("C", 1)):
        service.create(
            "owner-1",
            EntryDraft(title=title, sort_key=key, body=f'<img src="{url}">' if title == "A" else ""),
        )
    http_client = _http_client(app)
    workspace = LogWorkspace(
        HttpRemoteEntryStore(CONFIG, client=http_client),
        StaticCredentialProvider(CREDENTIAL),
        image_cleanup=HttpImageCleanupClient(CONFIG, client=http_client),
        metrics=InMemoryMetricsClient(),
    )

    await workspace.refresh()
    moved = workspace.visible()[2].entry_id
    outcome = await workspace.reorder(moved, 2, 0)
    deleted = await workspace.delete_entry(
        next(entry.entry_id for entry in workspace.state.entries if entry.title == "A")
    )
    await http_client.aclose()

    assert outcome.status is ReorderStatus.CONFIRMED
    assert deleted is True
    assert [entry.title for entry in workspace.state.entries] == ["C", "B"]
    server_titles = [entry.title for entry in service.list("owner-1", EntryQuery()).items]
    assert server_titles == ["C", "B"]
    assert image_store.objects == {}
