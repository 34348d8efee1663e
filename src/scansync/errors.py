"""Error taxonomy for the capture-persist-sync engine."""


class ScanSyncError(Exception):
    """Base exception for scansync."""


class PersistenceError(ScanSyncError):
    """Local storage could not be opened, read or written."""


class RemoteError(ScanSyncError):
    """Base class for failures talking to the remote record store."""


class NetworkError(RemoteError):
    """Transient remote failure (timeout, unreachable, 5xx). Safe to retry."""


class RejectedError(RemoteError):
    """The remote store permanently rejected the request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base


class InvalidCapture(ScanSyncError):
    """A scan event was malformed and never reached local storage."""
