"""Exception hierarchy for the sync subsystem.

Transport failures on the client side are recovered locally and never
reach the view layer; these types exist so the recovering code can catch
exactly what it knows how to recover from.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base exception for sync errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class VersionFetchError(SyncError):
    """GET /api/versions failed or returned something that is not a snapshot."""


class MalformedMessageError(SyncError):
    """A push message could not be decoded."""


class StorageUnavailableError(SyncError):
    """The server-side version store cannot be reached."""


class RegistryError(SyncError):
    """The static entity-group registry is inconsistent."""
