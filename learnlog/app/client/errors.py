"""Client-side failures raised by remote collaborators."""

from __future__ import annotations

from typing import Any, Dict, Optional


class RemoteStoreError(Exception):
    """The remote store rejected a call or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class CredentialUnavailableError(RemoteStoreError):
    """No bearer credential could be obtained for the current user."""

    def __init__(self, message: str = "No credential available") -> None:
        super().__init__(message, status_code=401, error_code="LL-UNAUTHORIZED")
