"""Exception hierarchy and the failure type carried by sync results."""

from __future__ import annotations

from enum import Enum


class GlucoseSyncError(Exception):
    """Base class for every error raised by this package."""


class RemoteError(GlucoseSyncError):
    """A remote call failed. ``status`` is the HTTP code when there was a response."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"HTTP {self.status}: {self.message}"
        return self.message


class AuthRejected(RemoteError):
    """The service explicitly refused the configured credential."""


class TransportError(RemoteError):
    """Network failure, timeout, non-2xx response or undecodable body."""


class NormalizationSkipped(GlucoseSyncError):
    """A single remote record could not be turned into a Reading."""


class LocalStorageError(GlucoseSyncError):
    """The local database or credential file could not be read or written."""


class ErrorKind(str, Enum):
    AUTH_REJECTED = "auth_rejected"
    TRANSPORT = "transport"
    NORMALIZATION_SKIPPED = "normalization_skipped"
    LOCAL_STORAGE = "local_storage"


class SyncError(GlucoseSyncError):
    """Failure half of a :class:`~glucose_sync.sync.engine.SyncResult`.

    Returned, not raised, by the read/sync path of the engine.
    """

    def __init__(self, kind: ErrorKind, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status

    @classmethod
    def from_remote(cls, exc: RemoteError) -> "SyncError":
        kind = ErrorKind.AUTH_REJECTED if isinstance(exc, AuthRejected) else ErrorKind.TRANSPORT
        return cls(kind, exc.message, exc.status)

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSPORT

    @property
    def user_message(self) -> str:
        """Short text suitable for an interactive "sync now" action."""
        if self.kind == ErrorKind.AUTH_REJECTED:
            return "Sync failed: the server rejected the app credentials"
        if self.status is not None:
            return f"Sync failed: HTTP {self.status} {self.message}".strip()
        return f"Sync failed: {self.message}"

    def __repr__(self) -> str:
        return f"<SyncError kind={self.kind.value} status={self.status} message={self.message!r}>"
