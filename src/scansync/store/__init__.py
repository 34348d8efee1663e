"""Local durable storage for scanned-code records."""

from scansync.store.local import LocalStore
from scansync.store.models import Record, SyncState

__all__ = ["LocalStore", "Record", "SyncState"]
