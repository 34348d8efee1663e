"""Sync module reconciling local records with the remote record store."""

from scansync.sync.engine import PushOutcome, PushResult, SyncEngine, SyncReport

__all__ = ["PushOutcome", "PushResult", "SyncEngine", "SyncReport"]
