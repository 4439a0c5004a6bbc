"""Exception hierarchy for note synchronization."""


class SyncError(Exception):
    """Base class for all sharednotes errors."""


class RemoteError(SyncError):
    """A remote note operation failed."""


class TransportFailure(RemoteError):
    """Network failure, timeout, or unexpected HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFound(RemoteError):
    """The remote store has no note with the requested title."""


class MalformedResponse(RemoteError):
    """A payload could not be decoded into a Note."""


class PollCancelled(SyncError):
    """A fetch finished after its poller was cancelled; the result is stale."""


class LocalStoreError(SyncError):
    """The local note store failed. Not recoverable by the engine."""
