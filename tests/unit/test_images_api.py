"""FastAPI tests for image upload and cleanup handlers."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from learnlog.app.api.dependencies import get_entry_service
from learnlog.app.api.routers import images
from learnlog.app.domain.entries.gateway import InMemoryEntryStoreGateway
from learnlog.app.domain.entries.service import EntryService
from learnlog.app.infra.metrics import InMemoryMetricsClient
from learnlog.app.infra.object_store import InMemoryImageStore, ObjectStoreError

pytestmark = [pytest.mark.images_api]


class BrokenImageStore(InMemoryImageStore):
    def upload(self, data, owner_id, *, filename, content_type=None):
        raise ObjectStoreError("disk full")

    def delete_paths(self, paths):
        raise ObjectStoreError("permission denied")


def _client(store: InMemoryImageStore) -> TestClient:
    service = EntryService(
        gateway=InMemoryEntryStoreGateway(),
        image_store=store,
        metrics=InMemoryMetricsClient(),
    )
    app = FastAPI()
    app.include_router(images.router)
    app.dependency_overrides[get_entry_service] = lambda: service
    return TestClient(app)


def test_upload_status_reports_reachable():
    response = _client(InMemoryImageStore()).get("/api/images")

    assert response.json()["ok"] is True


def test_upload_stores_under_owner_prefix():
    store = InMemoryImageStore()

    response = _client(store).post(
        "/api/images",
        files={"file": ("Diagram.PNG", b"\x89PNG", "image/png")},
        data={"owner_id": "owner-1"},
    )

    assert response.status_code == 200
    url = response.json()["url"]
    (path,) = store.objects
    assert path.startswith("owner-1/") and path.endswith(".png")
    assert url == f"{store.public_base_url}/learning-logs/{path}"
    assert store.content_types[path] == "image/png"


def test_upload_defaults_owner_and_requires_file():
    store = InMemoryImageStore()
    client = _client(store)

    anonymous = client.post("/api/images", files={"file": ("x.jpg", b"j", "image/jpeg")})
    missing = client.post("/api/images", data={"owner_id": "owner-1"})

    assert anonymous.status_code == 200
    assert next(iter(store.objects)).startswith("anonymous/")
    assert missing.status_code == 400
    assert missing.json()["detail"]["error_code"] == "LL-INVALID-REQUEST"


def test_cleanup_only_deletes_owned_paths():
    store = InMemoryImageStore()
    mine = store.upload(b"1", "owner-1", filename="a.png")
    theirs = store.upload(b"2", "owner-2", filename="b.png")
    outside = "https://elsewhere.example.com/public/other-bucket/owner-1/c.png"

    response = _client(store).post(
        "/api/images/cleanup",
        json={"urls": [mine, theirs, outside], "owner_id": "owner-1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["deleted"] == 1
    assert len(body["paths"]) == 1 and mine.endswith(body["paths"][0])
    assert len(store.objects) == 1


def test_storage_failures_map_to_storage_error():
    client = _client(BrokenImageStore())
    url = "http://testserver/storage/v1/object/public/learning-logs/owner-1/a.png"

    upload = client.post("/api/images", files={"file": ("a.png", b"1", "image/png")})
    cleanup = client.post(
        "/api/images/cleanup", json={"urls": [url], "owner_id": "owner-1"}
    )

    assert upload.status_code == 500
    assert upload.json()["detail"]["error_code"] == "LL-STORAGE-ERROR"
    assert cleanup.status_code == 500
