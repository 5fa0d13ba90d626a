"""Image upload and cleanup handlers proxying to the object store."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from ...api.dependencies import get_entry_service
from ...domain.entries.service import EntryService
from ...infra.logging import get_logger
from ...infra.object_store import DEFAULT_OWNER, ObjectStoreError

router = APIRouter(prefix="/api/images", tags=["images"])
logger = get_logger(__name__)


class UploadResponse(BaseModel):
    url: str


class CleanupRequest(BaseModel):
    urls: List[str] = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)


class CleanupResponse(BaseModel):
    ok: bool = True
    deleted: int
    paths: List[str] = Field(default_factory=list)


@router.get("", summary="Upload handler reachability check")
def upload_status() -> dict[str, object]:
    return {"ok": True, "message": "image upload API is reachable"}


@router.post(
    "",
    response_model=UploadResponse,
    summary="Store an image and return its public URL",
)
async def upload_image(
    file: UploadFile | None = File(None),
    owner_id: str = Form(DEFAULT_OWNER),
    service: EntryService = Depends(get_entry_service),
) -> UploadResponse:
    if file is None:
        raise _http_error(
            status.HTTP_400_BAD_REQUEST, "LL-INVALID-REQUEST", "file is required"
        )
    data = await file.read()
    try:
        url = service.upload_image(
            data,
            owner_id.strip() or DEFAULT_OWNER,
            filename=file.filename or "upload.bin",
            content_type=file.content_type,
        )
    except ObjectStoreError as exc:
        logger.error(
            "image_upload_failed",
            extra={"owner_id": owner_id, "filename": file.filename},
            exc_info=True,
        )
        raise _http_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "LL-STORAGE-ERROR", str(exc)
        ) from exc
    return UploadResponse(url=url)


@router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete images the owner no longer references",
)
def cleanup_images(
    payload: CleanupRequest,
    service: EntryService = Depends(get_entry_service),
) -> CleanupResponse:
    try:
        result = service.cleanup_images(payload.urls, payload.owner_id)
    except ObjectStoreError as exc:
        logger.error(
            "image_cleanup_failed",
            extra={"owner_id": payload.owner_id, "urls": payload.urls},
            exc_info=True,
        )
        raise _http_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "LL-STORAGE-ERROR", str(exc)
        ) from exc
    return CleanupResponse(deleted=result.deleted, paths=result.paths)


def _http_error(status_code: int, error_code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error_code": error_code, "message": message, "details": {}},
    )
