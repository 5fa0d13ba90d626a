"""Client core: local list state, optimistic reorder and remote reconciliation."""

from .coordinator import ReorderCoordinator, ReorderOutcome, ReorderStatus, ResyncStatus
from .credentials import (
    CallableCredentialProvider,
    Credential,
    CredentialProvider,
    FallbackCredentialProvider,
    StaticCredentialProvider,
)
from .errors import CredentialUnavailableError, RemoteStoreError
from .remote import HttpImageCleanupClient, HttpRemoteEntryStore, RemoteEntryStore
from .state import EntryFilter, EntryListState, ListPhase
from .workspace import LogWorkspace

__all__ = [
    "CallableCredentialProvider",
    "Credential",
    "CredentialProvider",
    "CredentialUnavailableError",
    "EntryFilter",
    "EntryListState",
    "FallbackCredentialProvider",
    "HttpImageCleanupClient",
    "HttpRemoteEntryStore",
    "ListPhase",
    "LogWorkspace",
    "RemoteEntryStore",
    "RemoteStoreError",
    "ReorderCoordinator",
    "ReorderOutcome",
    "ReorderStatus",
    "ResyncStatus",
    "StaticCredentialProvider",
]
