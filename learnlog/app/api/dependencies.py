"""Shared API dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from fastapi import HTTPException, Request, status

from ..config import Settings, load_settings
from ..domain.entries.gateway import build_entry_store_gateway
from ..domain.entries.service import EntryService
from ..infra.object_store import build_image_store

__all__ = [
    "OWNER_ID_HEADER",
    "OwnerContext",
    "get_entry_service",
    "get_owner_context",
    "get_settings",
]

# The identity provider is external; a fronting proxy verifies the bearer
# credential and forwards its subject in this header.
OWNER_ID_HEADER = "x-owner-id"


@dataclass(frozen=True)
class OwnerContext:
    """The user whose entries a request may read or change."""

    owner_id: str


@lru_cache()
def _entry_service_singleton() -> EntryService:
    return EntryService(
        gateway=build_entry_store_gateway(),
        image_store=build_image_store(),
    )


def get_entry_service() -> EntryService:
    """Return the process-wide entry service instance."""

    return _entry_service_singleton()


def get_owner_context(request: Request) -> OwnerContext:
    """Extract the owner from request headers; reject anonymous calls."""

    owner_id = (request.headers.get(OWNER_ID_HEADER) or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "LL-UNAUTHORIZED",
                "message": "Missing owner credential",
                "details": {"header": OWNER_ID_HEADER},
            },
        )
    return OwnerContext(owner_id=owner_id)


def get_settings() -> Settings:
    """Settings for the active profile."""

    return load_settings()
