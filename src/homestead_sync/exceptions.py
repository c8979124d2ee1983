"""Exceptions raised by the Homestead sync core."""

from typing import Any, Optional


class HomesteadSyncError(Exception):
    """Base class for all sync core errors."""


class RecordStoreError(HomesteadSyncError):
    """Raised when the local record store rejects an operation."""


class TransientNetworkError(HomesteadSyncError):
    """Remote could not be reached or answered with a retryable status."""


class PermanentValidationError(HomesteadSyncError):
    """Remote rejected a change in a way retrying will not fix."""


class RemoteChangedError(HomesteadSyncError):
    """Remote row moved past the version this device last synced.

    Raised by a conditional push. The change stays queued and the pull phase
    decides whether it is a conflict.
    """


class ConflictDetected(HomesteadSyncError):
    """A remote change collided with an unpushed local change."""

    def __init__(self, conflict: Any, message: Optional[str] = None) -> None:
        self.conflict = conflict
        super().__init__(
            message
            or (
                f"Conflict on {conflict.store_name}/{conflict.record_id} "
                f"(conflict id {conflict.id})"
            )
        )


class ConflictNotFoundError(HomesteadSyncError):
    """No conflict log entry exists for the given id."""


class CycleBusyError(HomesteadSyncError):
    """A sync cycle is already in flight."""


class AdapterMissingError(HomesteadSyncError):
    """No adapter is registered for an integration's provider."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Adapter {provider} not found")


class AdapterConfigError(HomesteadSyncError):
    """Integration settings are missing something the adapter needs."""
