"""Error kinds raised by the sync core."""


class FieldSyncError(Exception):
    """Base class for every error the sync core raises on purpose."""


class StorageError(FieldSyncError):
    """The local store is unavailable or a write failed (batch rolled back)."""


class NetworkError(FieldSyncError):
    """A remote API call failed: transport error, non-2xx or malformed body."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(FieldSyncError):
    """A keyed record (audit id, job number) does not exist locally."""


class SyncRejectedError(FieldSyncError):
    """A manual sync request failed a precondition.

    ``user_message`` is the short text safe to show to the user; the
    exception message itself may carry more detail for the log.
    """

    user_message = "Sync not available"

    def __init__(self, message: str = None):
        super().__init__(message or self.user_message)


class SyncInProgressError(SyncRejectedError):
    user_message = "Sync already in progress"


class OfflineError(SyncRejectedError):
    user_message = "Cannot sync while offline"


class AuthRequiredError(SyncRejectedError):
    """No credential is stored, or the server rejected the stored one."""

    user_message = "Please log in to sync"
