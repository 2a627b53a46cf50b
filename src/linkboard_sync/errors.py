"""Exception taxonomy for linkboard_sync.

Entity-level failures (one post, one tag) are caught and logged by the
reconcilers; only pass-level failures reach the caller of a ``SyncEngine``
entry point.
"""


class LinkboardSyncError(Exception):
    """Base class for all errors raised by linkboard_sync."""


class IdentityError(LinkboardSyncError):
    """No authenticated identity, or the session could not be refreshed."""


class RemoteStoreError(LinkboardSyncError):
    """A remote store request failed.

    Attributes:
        status_code: HTTP status returned by the remote service, or ``None``
            when the request never produced a response.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(LinkboardSyncError, ValueError):
    """Invalid or missing configuration."""
