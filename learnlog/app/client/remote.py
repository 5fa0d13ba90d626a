"""Remote store contract and its HTTP implementation."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from ..config import ClientConfig, load_settings
from ..domain.entries.models import Entry, EntryDraft, normalize_categories
from ..infra.logging import get_logger
from .credentials import Credential
from .errors import RemoteStoreError

__all__ = [
    "HttpImageCleanupClient",
    "HttpRemoteEntryStore",
    "ImageCleanupClient",
    "RemoteEntryStore",
    "entry_from_payload",
]

logger = get_logger(__name__)

LIST_PAGE_SIZE = 100


class RemoteEntryStore(Protocol):  # pragma: no cover - interface only
    """Operations the client core needs from the hosted entry store."""

    async def list_entries(
        self,
        credential: Credential,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Entry]: ...

    async def insert(self, credential: Credential, draft: EntryDraft) -> Entry: ...

    async def insert_many(
        self, credential: Credential, drafts: Sequence[EntryDraft]
    ) -> List[Entry]: ...

    async def update(
        self,
        credential: Credential,
        entry_id: str,
        fields: Mapping[str, Any],
    ) -> Entry: ...

    async def delete(self, credential: Credential, entry_id: str) -> None: ...

    async def reorder(self, credential: Credential, entry_ids: Sequence[str]) -> None: ...


class ImageCleanupClient(Protocol):  # pragma: no cover - interface only
    async def delete_images(self, urls: Sequence[str], owner_id: str) -> int: ...


class _HttpBase:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or load_settings().client
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.config.timeout_seconds),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        credential: Optional[Credential] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if credential is not None:
            headers["Authorization"] = f"Bearer {credential.token}"
            headers["X-Owner-Id"] = credential.owner_id
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            logger.debug(
                "remote_request_rejected",
                extra={"method": method, "url": url, "status_code": response.status_code},
            )
            raise _error_from_response(response)
        return response


class HttpRemoteEntryStore(_HttpBase):
    """Talks to the learning log API with ``httpx.AsyncClient``."""

    async def list_entries(
        self,
        credential: Credential,
        *,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Entry]:
        params: Dict[str, Any] = {"page_size": LIST_PAGE_SIZE}
        if category:
            params["category"] = category
        if search:
            params["q"] = search
        entries: List[Entry] = []
        page = 1
        while True:
            params["page"] = page
            response = await self._request(
                "GET", "/api/entries", credential=credential, params=params
            )
            body = _json(response)
            if not isinstance(body, dict):
                raise RemoteStoreError(
                    "Invalid response format from API", status_code=response.status_code
                )
            entries.extend(entry_from_payload(item) for item in body.get("items", []))
            total_pages = int((body.get("pagination") or {}).get("total_pages") or 0)
            if page >= total_pages:
                return entries
            page += 1

    async def insert(self, credential: Credential, draft: EntryDraft) -> Entry:
        response = await self._request(
            "POST", "/api/entries", credential=credential, json=_draft_payload(draft)
        )
        return entry_from_payload(_json(response))

    async def insert_many(
        self, credential: Credential, drafts: Sequence[EntryDraft]
    ) -> List[Entry]:
        response = await self._request(
            "POST",
            "/api/entries/batch",
            credential=credential,
            json={"items": [_draft_payload(draft) for draft in drafts]},
        )
        return [entry_from_payload(item) for item in _json(response)]

    async def update(
        self,
        credential: Credential,
        entry_id: str,
        fields: Mapping[str, Any],
    ) -> Entry:
        response = await self._request(
            "PATCH",
            f"/api/entries/{entry_id}",
            credential=credential,
            json=dict(fields),
        )
        return entry_from_payload(_json(response))

    async def delete(self, credential: Credential, entry_id: str) -> None:
        await self._request("DELETE", f"/api/entries/{entry_id}", credential=credential)

    async def reorder(self, credential: Credential, entry_ids: Sequence[str]) -> None:
        await self._request(
            "POST",
            "/api/entries/reorder",
            credential=credential,
            json={"ids": list(entry_ids)},
        )


class HttpImageCleanupClient(_HttpBase):
    """Posts removed image URLs to the cleanup handler."""

    async def delete_images(self, urls: Sequence[str], owner_id: str) -> int:
        response = await self._request(
            "POST",
            "/api/images/cleanup",
            json={"urls": list(urls), "owner_id": owner_id},
        )
        return int(_json(response).get("deleted", 0))


def entry_from_payload(payload: Mapping[str, Any]) -> Entry:
    """Build an ``Entry`` from the API's JSON representation.

    A payload missing ``id`` or ``created_at``, or carrying values that do
    not parse, raises ``RemoteStoreError`` like any other bad response.
    """

    try:
        created_at = _parse_datetime(payload["created_at"])
        updated_raw = payload.get("updated_at")
        return Entry(
            entry_id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            body=str(payload.get("body") or ""),
            categories=tuple(normalize_categories(payload.get("categories"))),
            created_at=created_at,
            sort_key=int(payload.get("sort_key") or 0),
            owner_id=str(payload.get("owner_id") or ""),
            updated_at=_parse_datetime(updated_raw) if updated_raw else created_at,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise RemoteStoreError(f"Malformed entry in API response: {exc!r}") from exc


def _draft_payload(draft: EntryDraft) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "title": draft.title,
        "body": draft.body,
        "categories": list(draft.categories),
    }
    if draft.created_at is not None:
        payload["created_at"] = draft.created_at.isoformat()
    if draft.sort_key is not None:
        payload["sort_key"] = draft.sort_key
    return payload


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        raise RemoteStoreError(
            "Invalid response format from API", status_code=response.status_code
        ) from exc


def _error_from_response(response: httpx.Response) -> RemoteStoreError:
    detail: Dict[str, Any] = {}
    try:
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("detail"), dict):
            detail = body["detail"]
    except json.JSONDecodeError:
        pass
    return RemoteStoreError(
        detail.get("message") or f"API error: {response.status_code}",
        status_code=response.status_code,
        error_code=detail.get("error_code"),
        details=detail.get("details") or {},
    )
