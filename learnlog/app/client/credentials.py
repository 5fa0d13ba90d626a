"""Credential providers consulted before every remote call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from ..infra.logging import get_logger

__all__ = [
    "CallableCredentialProvider",
    "Credential",
    "CredentialProvider",
    "FallbackCredentialProvider",
    "StaticCredentialProvider",
]

logger = get_logger(__name__)


@dataclass(frozen=True)
class Credential:
    """Bearer token plus the subject it was issued for."""

    token: str
    owner_id: str


class CredentialProvider(Protocol):  # pragma: no cover - interface only
    async def get_credential(self) -> Optional[Credential]: ...


@dataclass
class StaticCredentialProvider:
    """Always returns the same credential (or none when signed out)."""

    credential: Optional[Credential] = None

    async def get_credential(self) -> Optional[Credential]:
        return self.credential


class CallableCredentialProvider:
    """Adapts an async callable; failures degrade to ``None``."""

    def __init__(self, fetch: Callable[[], Awaitable[Optional[Credential]]]) -> None:
        self._fetch = fetch

    async def get_credential(self) -> Optional[Credential]:
        try:
            return await self._fetch()
        except Exception:
            logger.warning("credential_fetch_failed", exc_info=True)
            return None


class FallbackCredentialProvider:
    """Tries each provider in turn, e.g. a scoped template then the default."""

    def __init__(self, providers: Sequence[CredentialProvider]) -> None:
        self._providers = list(providers)

    async def get_credential(self) -> Optional[Credential]:
        for provider in self._providers:
            credential = await provider.get_credential()
            if credential is not None:
                return credential
        return None
