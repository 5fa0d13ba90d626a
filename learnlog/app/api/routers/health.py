"""System health endpoints for frontend polling."""

from typing import Any

from fastapi import APIRouter, Depends

from ...api.dependencies import get_entry_service, get_settings
from ...config import Settings
from ...domain.entries.service import EntryService
from ...infra.logging import get_logger

router = APIRouter(prefix="/api", tags=["health"])
logger = get_logger(__name__)


@router.get("/healthz")
def healthcheck(
    settings: Settings = Depends(get_settings),
    service: EntryService = Depends(get_entry_service),
) -> dict[str, Any]:
    """Return readiness information including an entry store check."""

    try:
        store_ok = service.gateway.ping()
        store_error = None
    except Exception as exc:
        logger.warning("entry_store_ping_failed", exc_info=True)
        store_ok = False
        store_error = str(exc)

    return {
        "status": "ok" if store_ok else "degraded",
        "environment": settings.environment,
        "entryStore": "ok" if store_ok else "unavailable",
        "entryStoreError": store_error,
    }
