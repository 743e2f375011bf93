"""Exception taxonomy shared by the sync engine and its collaborators."""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for every error raised by the sync engine."""


class NotConnected(SyncError):
    def __init__(self, message: str = "No network connection") -> None:
        super().__init__(message)


class AlreadySyncing(SyncError):
    def __init__(self, message: str = "A sync pass is already in progress") -> None:
        super().__init__(message)


class MissingScopeIdentifier(SyncError):
    """Raised when no company or user id can be resolved for a pull."""

    def __init__(self, scope: str) -> None:
        self.scope = scope
        super().__init__(f"No {scope} id available for sync")


class RemoteCallFailed(SyncError):
    """Wraps a remote failure with the entity type whose sync it aborted."""

    def __init__(self, entity: str, cause: BaseException) -> None:
        self.entity = entity
        self.cause = cause
        super().__init__(f"{entity} sync failed: {cause}")


class LocalStoreCorruption(SyncError):
    """A record expected to exist locally was not found."""

    def __init__(self, entity: str, record_id: str) -> None:
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} with id '{record_id}' not found in local store")


class RemoteError(Exception):
    """Base class for failures surfaced by an entity repository."""


class RemoteNetworkError(RemoteError):
    pass


class RemoteHTTPError(RemoteError):
    def __init__(self, status_code: int, message: str = "", url: Optional[str] = None) -> None:
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")


class RemoteDecodeError(RemoteError):
    pass


__all__ = [
    "SyncError",
    "NotConnected",
    "AlreadySyncing",
    "MissingScopeIdentifier",
    "RemoteCallFailed",
    "LocalStoreCorruption",
    "RemoteError",
    "RemoteNetworkError",
    "RemoteHTTPError",
    "RemoteDecodeError",
]
