"""Entry endpoints: listing, CRUD, reorder procedure and export/import."""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from fastapi import (
    APIRouter,
    Body,
    Depends,
    HTTPException,
    Path,
    Query,
    Response,
    status,
)
from pydantic import BaseModel, Field, field_validator, model_validator

from ...api.dependencies import OwnerContext, get_entry_service, get_owner_context
from ...domain.entries.errors import (
    EntryNotFoundError,
    EntryStoreError,
    ImportFormatError,
    ReorderRejectedError,
)
from ...domain.entries.gateway import EntryQuery
from ...domain.entries.models import (
    ALL_CATEGORIES,
    Entry,
    EntryDraft,
    as_utc,
    normalize_categories,
)
from ...domain.entries.service import EntryService
from ...domain.entries.transfer import export_filename
from ...infra.logging import get_logger
from ...infra.metrics import get_metrics_client

router = APIRouter(prefix="/api/entries", tags=["entries"])
logger = get_logger(__name__)
metrics = get_metrics_client()
MAX_QUERY_LENGTH = 256
MAX_PAGE_SIZE = 100
MAX_REORDER_BATCH = 5000

EntryId = Annotated[str, Path(..., min_length=1, max_length=64)]


class EntryCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    body: str = ""
    categories: Optional[List[Optional[str]]] = None
    created_at: Optional[datetime] = None
    sort_key: Optional[int] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value


class EntryBatchRequest(BaseModel):
    items: List[EntryCreateRequest] = Field(default_factory=list)


class EntryUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)
    body: Optional[str] = None
    categories: Optional[List[Optional[str]]] = None

    @model_validator(mode="after")
    def _ensure_change(self) -> "EntryUpdateRequest":
        if self.title is None and self.body is None and self.categories is None:
            raise ValueError("update requires title, body or categories")
        if self.title is not None and not self.title.strip():
            raise ValueError("title must not be blank")
        return self


class ReorderRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=MAX_REORDER_BATCH)


class EntryResponse(BaseModel):
    id: str
    title: str
    body: str
    categories: List[str]
    created_at: datetime
    updated_at: Optional[datetime] = None
    sort_key: int
    owner_id: str


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int


class EntryListResponse(BaseModel):
    items: List[EntryResponse] = Field(default_factory=list)
    pagination: PaginationMeta
    filters: Dict[str, object] = Field(default_factory=dict)


class ReorderResponse(BaseModel):
    ok: bool = True
    items: List[EntryResponse] = Field(default_factory=list)


class ImportResponse(BaseModel):
    imported: int
    items: List[EntryResponse] = Field(default_factory=list)


class CategoriesResponse(BaseModel):
    categories: List[str]


@router.get(
    "",
    response_model=EntryListResponse,
    summary="List entries in display order",
)
def list_entries(
    q: Annotated[
        Optional[str],
        Query(description="Case-insensitive search over titles and bodies."),
    ] = None,
    category: Optional[str] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> EntryListResponse:
    metrics.increment("entries_list_http_total")
    normalized_q = _normalize_query(q)
    normalized_category = _normalize_category(category)
    if created_from and created_to and as_utc(created_from) > as_utc(created_to):
        raise _invalid_request(
            "created_from must be before created_to",
            fields={
                "created_range": f"{created_from.isoformat()} - {created_to.isoformat()}"
            },
        )

    query = EntryQuery(
        category=normalized_category,
        terms=_tokenize_query(normalized_q),
        created_from=created_from,
        created_to=created_to,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    result = service.list(owner.owner_id, query)
    total_pages = math.ceil(result.total / page_size) if result.total else 0
    filters: Dict[str, object] = {}
    if normalized_q:
        filters["q"] = normalized_q
    if normalized_category:
        filters["category"] = normalized_category
    if created_from:
        filters["created_from"] = created_from
    if created_to:
        filters["created_to"] = created_to
    return EntryListResponse(
        items=[_serialize_entry(entry) for entry in result.items],
        pagination=PaginationMeta(
            page=page,
            page_size=page_size,
            total_items=result.total,
            total_pages=total_pages,
        ),
        filters=filters,
    )


@router.get(
    "/categories",
    response_model=CategoriesResponse,
    summary="List every category label in use",
)
def list_categories(
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> CategoriesResponse:
    return CategoriesResponse(categories=service.categories(owner.owner_id))


@router.get("/export", summary="Export every entry as JSON")
def export_entries(
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> Response:
    document = service.export_document(owner.owner_id)
    metrics.increment("entries_export_total")
    return Response(
        content=_dump_json(document),
        media_type="application/json; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename()}"'
        },
    )


@router.post(
    "/import",
    response_model=ImportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Import entries from an export document",
)
def import_entries(
    payload: Any = Body(None),
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> ImportResponse:
    try:
        inserted = service.import_document(owner.owner_id, payload)
    except ImportFormatError as exc:
        logger.warning(
            "entries_import_rejected",
            extra={"owner_id": owner.owner_id, "reason": str(exc)},
        )
        raise _invalid_request(str(exc), fields={"body": "items"}) from exc
    return ImportResponse(
        imported=len(inserted),
        items=[_serialize_entry(entry) for entry in inserted],
    )


@router.post(
    "/reorder",
    response_model=ReorderResponse,
    summary="Persist a manual order for exactly the given ids",
)
def reorder_entries(
    payload: ReorderRequest,
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> ReorderResponse:
    try:
        updated = service.reorder(owner.owner_id, payload.ids)
    except ReorderRejectedError as exc:
        metrics.increment("reorder_rejected_total")
        logger.warning(
            "reorder_rejected",
            extra={"owner_id": owner.owner_id, "details": exc.details},
        )
        raise _invalid_request(exc.message, fields=exc.details) from exc
    return ReorderResponse(items=[_serialize_entry(entry) for entry in updated])


@router.post(
    "/batch",
    response_model=List[EntryResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Insert several entries at once",
)
def create_entries_batch(
    payload: EntryBatchRequest,
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> List[EntryResponse]:
    drafts = [_to_draft(item) for item in payload.items]
    inserted = service.create_many(owner.owner_id, drafts)
    return [_serialize_entry(entry) for entry in inserted]


@router.post(
    "",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entry",
)
def create_entry(
    payload: EntryCreateRequest,
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> EntryResponse:
    entry = service.create(owner.owner_id, _to_draft(payload))
    return _serialize_entry(entry)


@router.get(
    "/{entry_id}",
    response_model=EntryResponse,
    summary="Retrieve entry detail",
)
def get_entry_detail(
    entry_id: EntryId,
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> EntryResponse:
    try:
        entry = service.get(owner.owner_id, entry_id)
    except EntryNotFoundError as exc:
        raise _not_found(entry_id) from exc
    return _serialize_entry(entry)


@router.patch(
    "/{entry_id}",
    response_model=EntryResponse,
    summary="Update title, body or categories",
)
def update_entry(
    entry_id: EntryId,
    payload: EntryUpdateRequest,
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> EntryResponse:
    try:
        entry = service.update(
            owner.owner_id,
            entry_id,
            title=payload.title,
            body=payload.body,
            categories=payload.categories,
        )
    except EntryNotFoundError as exc:
        raise _not_found(entry_id) from exc
    except EntryStoreError as exc:
        raise _storage_error(exc) from exc
    return _serialize_entry(entry)


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an entry and clean up its images",
)
def delete_entry(
    entry_id: EntryId,
    owner: OwnerContext = Depends(get_owner_context),
    service: EntryService = Depends(get_entry_service),
) -> Response:
    try:
        service.delete(owner.owner_id, entry_id)
    except EntryNotFoundError as exc:
        raise _not_found(entry_id) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _normalize_query(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed[:MAX_QUERY_LENGTH]


def _tokenize_query(value: Optional[str]) -> tuple[str, ...]:
    # The whole phrase is one term, matching the list page's substring search.
    if not value:
        return tuple()
    return (value.lower(),)


def _normalize_category(value: Optional[str]) -> Optional[str]:
    if value is None or value == ALL_CATEGORIES:
        return None
    return normalize_categories([value])[0]


def _to_draft(payload: EntryCreateRequest) -> EntryDraft:
    return EntryDraft(
        title=payload.title,
        body=payload.body,
        categories=tuple(normalize_categories(payload.categories)),
        created_at=payload.created_at,
        sort_key=payload.sort_key,
    )


def _serialize_entry(entry: Entry) -> EntryResponse:
    return EntryResponse(
        id=entry.entry_id,
        title=entry.title,
        body=entry.body,
        categories=list(entry.categories),
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        sort_key=entry.sort_key,
        owner_id=entry.owner_id,
    )


def _dump_json(document: Dict[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2)


def _invalid_request(
    message: str,
    *,
    fields: Dict[str, object] | None = None,
) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        detail={
            "error_code": "LL-INVALID-REQUEST",
            "message": message,
            "details": fields or {},
        },
    )


def _not_found(entry_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error_code": "LL-NOT-FOUND",
            "message": f"Entry '{entry_id}' not found",
            "details": {"entry_id": entry_id},
        },
    )


def _storage_error(exc: EntryStoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
