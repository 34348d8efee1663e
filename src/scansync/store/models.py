"""Record model shared by the local store, sync engine and capture controller."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SyncState(Enum):
    """Relationship of a local record to the remote store."""

    PENDING = "pending"
    SYNCED = "synced"
    DELETE_PENDING = "delete_pending"


@dataclass(frozen=True)
class Record:
    """A single scanned-code capture with a durable identity."""

    id: str
    payload: str
    symbology: str
    created_at: datetime
    sync_state: SyncState
    seq: int = 0
    remote_id: str | None = None
    attempts: int = 0
    last_error: str | None = None
    rejected: bool = False

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "id": self.id,
            "payload": self.payload,
            "symbology": self.symbology,
            "created_at": self.created_at.isoformat(),
            "sync_state": self.sync_state.value,
            "remote_id": self.remote_id,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "rejected": self.rejected,
        }
