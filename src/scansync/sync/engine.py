"""Reconciliation of the local record store with the remote record store."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from scansync.errors import NetworkError, RejectedError, RemoteError, ScanSyncError
from scansync.logging import (
    log_push_failed,
    log_push_success,
    log_state_change,
    log_sync_summary,
)
from scansync.remote.base import RemoteRecord, RemoteStore
from scansync.store.local import LocalStore
from scansync.store.models import Record, SyncState

logger = logging.getLogger(__name__)


class PushOutcome(Enum):
    """What a single push or deletion did."""

    CREATED = "created"  # remote acknowledged creation, record is Synced
    RECONCILED = "reconciled"  # remote already had it (idempotency key match)
    QUEUED = "queued"  # hidden locally, remote delete still to do
    DELETED = "deleted"  # remote acknowledged deletion, record purged
    PURGED = "purged"  # never synced, removed locally only
    NOOP = "noop"  # nothing to do for the record's current state
    SKIPPED = "skipped"  # another task is already working on the record
    FAILED = "failed"  # transient failure, retried on a later pass
    REJECTED = "rejected"  # remote refused it, kept locally for inspection


@dataclass
class PushResult:
    """Result of one record operation against the remote store."""

    record_id: str
    outcome: PushOutcome
    remote_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome not in (PushOutcome.FAILED, PushOutcome.REJECTED)

    @property
    def retryable(self) -> bool:
        return self.outcome == PushOutcome.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "outcome": self.outcome.value,
            "remote_id": self.remote_id,
            "error": self.error,
        }


@dataclass
class SyncReport:
    """Summary of a full sync pass."""

    remote_ok: bool = True
    remote_error: str | None = None
    results: list[PushResult] = field(default_factory=list)

    def _count(self, *outcomes: PushOutcome) -> int:
        return sum(1 for r in self.results if r.outcome in outcomes)

    @property
    def pushed(self) -> int:
        return self._count(PushOutcome.CREATED)

    @property
    def reconciled(self) -> int:
        return self._count(PushOutcome.RECONCILED)

    @property
    def deleted(self) -> int:
        return self._count(PushOutcome.DELETED)

    @property
    def rejected(self) -> int:
        return self._count(PushOutcome.REJECTED)

    @property
    def skipped(self) -> int:
        return self._count(PushOutcome.SKIPPED)

    @property
    def failures(self) -> int:
        """Records whose operation failed, transient or permanent."""
        return self._count(PushOutcome.FAILED, PushOutcome.REJECTED)

    @property
    def errors(self) -> list[PushResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "remote_ok": self.remote_ok,
            "remote_error": self.remote_error,
            "pushed": self.pushed,
            "reconciled": self.reconciled,
            "deleted": self.deleted,
            "rejected": self.rejected,
            "skipped": self.skipped,
            "failures": self.failures,
            "errors": [r.to_dict() for r in self.errors],
        }


class SyncEngine:
    """Drives records from local creation to remote acknowledgement.

    Every network call is made at most once per trigger. A failed call
    leaves the record's state untouched so a later ``push_one`` or
    ``full_sync`` can pick it up again; state is only written after the
    remote call has returned.

    Records are guarded individually: a record that another task is
    already pushing or deleting is skipped instead of being sent twice.

    Example:
        engine = SyncEngine(store, RemoteStoreClient("http://localhost:3000"))
        report = await engine.full_sync()
        print(report.failures)
    """

    def __init__(self, store: LocalStore, remote: RemoteStore) -> None:
        """Initialize the engine.

        Args:
            store: Local record store
            remote: Remote record store client
        """
        self._store = store
        self._remote = remote
        self._inflight: set[str] = set()

        self._remote_view: list[RemoteRecord] = []
        self._remote_view_error: str | None = None
        self._remote_view_at: datetime | None = None

    @property
    def remote_view(self) -> list[RemoteRecord]:
        """Last successfully fetched remote record list (display cache)."""
        return list(self._remote_view)

    @property
    def remote_view_error(self) -> str | None:
        """Error from the most recent refresh, or None if it succeeded."""
        return self._remote_view_error

    @property
    def remote_view_at(self) -> datetime | None:
        """When the remote view was last refreshed successfully."""
        return self._remote_view_at

    def _claim(self, record_id: str) -> bool:
        if record_id in self._inflight:
            return False
        self._inflight.add(record_id)
        return True

    def _release(self, record_id: str) -> None:
        self._inflight.discard(record_id)

    async def refresh_remote_view(self) -> list[RemoteRecord]:
        """Fetch the remote list into the display cache.

        On failure the previous view is kept and the error is remembered.

        Raises:
            NetworkError: If the remote list could not be fetched
        """
        try:
            view = await self._remote.list()
        except NetworkError as e:
            self._remote_view_error = str(e)
            logger.warning("Remote list failed, keeping cached view: %s", e)
            raise

        self._remote_view = view
        self._remote_view_error = None
        self._remote_view_at = datetime.now(timezone.utc)
        return self.remote_view

    async def push_one(self, record: Record) -> PushResult:
        """Send a Pending record to the remote store.

        A record that is not Pending (already Synced, being deleted, or gone)
        is left alone without any network call.
        """
        current = self._store.get(record.id)
        if current is None or current.sync_state != SyncState.PENDING:
            return PushResult(record.id, PushOutcome.NOOP)

        if not self._claim(record.id):
            return PushResult(record.id, PushOutcome.SKIPPED)
        try:
            return await self._create(current)
        finally:
            self._release(record.id)

    async def _create(self, record: Record) -> PushResult:
        started = time.monotonic()
        try:
            remote_id = await self._remote.create(
                record.payload, record.symbology, client_id=record.id
            )
        except NetworkError as e:
            self._store.record_failure(record.id, str(e))
            log_push_failed(logger, record.id, "create", str(e), record.attempts + 1, True)
            return PushResult(record.id, PushOutcome.FAILED, error=str(e))
        except RejectedError as e:
            self._store.record_failure(record.id, str(e), rejected=True)
            log_push_failed(logger, record.id, "create", str(e), record.attempts + 1, False)
            return PushResult(record.id, PushOutcome.REJECTED, error=str(e))

        elapsed_ms = (time.monotonic() - started) * 1000
        if self._store.mark_synced(record.id, remote_id):
            log_push_success(logger, record.id, "create", remote_id, elapsed_ms)
            log_state_change(logger, record.id, "pending", "synced", trigger="create_ack")
            return PushResult(record.id, PushOutcome.CREATED, remote_id=remote_id)

        # Deleted locally while the create was in flight
        if self._store.get(record.id) is None:
            await self._delete_orphan(record.id, remote_id)
        return PushResult(record.id, PushOutcome.NOOP, remote_id=remote_id)

    async def _delete_orphan(self, record_id: str, remote_id: str) -> None:
        try:
            await self._remote.delete(remote_id)
            logger.info("Removed orphan remote record: record_id=%s, remote_id=%s",
                        record_id, remote_id)
        except RemoteError as e:
            logger.warning("Orphan remote record left behind: record_id=%s, remote_id=%s, error=%s",
                           record_id, remote_id, e)

    def begin_deletion(self, record_id: str) -> PushResult:
        """Local half of a user deletion. Never touches the network.

        A Pending record has no remote counterpart and is purged right away.
        A Synced record is marked DeletePending so it disappears from local
        reads, and its remote delete is left for ``push_deletion``.

        Returns:
            PushResult with outcome PURGED, QUEUED or NOOP (unknown id)
        """
        record = self._store.get(record_id)
        if record is None:
            return PushResult(record_id, PushOutcome.NOOP)

        if record.sync_state == SyncState.PENDING and self._store.purge_if_pending(record_id):
            log_state_change(logger, record_id, "pending", "purged", trigger="user_delete")
            return PushResult(record_id, PushOutcome.PURGED)

        if self._store.mark_delete_pending(record_id):
            log_state_change(logger, record_id, "synced", "delete_pending", trigger="user_delete")

        current = self._store.get(record_id)
        if current is None:
            return PushResult(record_id, PushOutcome.NOOP)
        if current.sync_state == SyncState.DELETE_PENDING:
            return PushResult(record_id, PushOutcome.QUEUED, remote_id=current.remote_id)
        # Still Pending: the state changed between reads, try the purge once more
        if self._store.purge_if_pending(record_id):
            log_state_change(logger, record_id, "pending", "purged", trigger="user_delete")
            return PushResult(record_id, PushOutcome.PURGED)
        return PushResult(record_id, PushOutcome.NOOP)

    async def push_deletion(self, record: Record) -> PushResult:
        """Delete a record locally and, if it was synced, remotely."""
        step = self.begin_deletion(record.id)
        if step.outcome != PushOutcome.QUEUED:
            return step
        return await self._push_remote_delete(record.id)

    async def _push_remote_delete(self, record_id: str) -> PushResult:
        if not self._claim(record_id):
            return PushResult(record_id, PushOutcome.SKIPPED)
        try:
            record = self._store.get(record_id)
            if record is None or record.sync_state != SyncState.DELETE_PENDING:
                return PushResult(record_id, PushOutcome.NOOP)
            return await self._remote_delete(record)
        finally:
            self._release(record_id)

    async def _remote_delete(self, record: Record) -> PushResult:
        if record.remote_id is None:
            # No remote counterpart was ever recorded
            self._store.purge(record.id)
            return PushResult(record.id, PushOutcome.PURGED)

        started = time.monotonic()
        try:
            await self._remote.delete(record.remote_id)
        except NetworkError as e:
            self._store.record_failure(record.id, str(e))
            log_push_failed(logger, record.id, "delete", str(e), record.attempts + 1, True)
            return PushResult(record.id, PushOutcome.FAILED, remote_id=record.remote_id, error=str(e))
        except RejectedError as e:
            self._store.record_failure(record.id, str(e), rejected=True)
            log_push_failed(logger, record.id, "delete", str(e), record.attempts + 1, False)
            return PushResult(record.id, PushOutcome.REJECTED, remote_id=record.remote_id, error=str(e))

        elapsed_ms = (time.monotonic() - started) * 1000
        self._store.purge(record.id)
        log_push_success(logger, record.id, "delete", record.remote_id, elapsed_ms)
        log_state_change(logger, record.id, "delete_pending", "purged", trigger="delete_ack")
        return PushResult(record.id, PushOutcome.DELETED, remote_id=record.remote_id)

    def _reconcile(self, view: list[RemoteRecord]) -> list[PushResult]:
        """Adopt remote records created for a Pending record whose ack was lost.

        Matches on the idempotency key each create carries, never on payload.
        """
        by_client_id = {r.client_id: r for r in view if r.client_id}
        if not by_client_id:
            return []

        results = []
        for record in self._store.list_by_state(SyncState.PENDING):
            remote = by_client_id.get(record.id)
            if remote is None or record.id in self._inflight:
                continue
            if self._store.mark_synced(record.id, remote.id):
                log_state_change(logger, record.id, "pending", "synced", trigger="reconcile")
                results.append(PushResult(record.id, PushOutcome.RECONCILED, remote_id=remote.id))
        return results

    async def _isolated(self, record: Record, operation) -> PushResult:
        try:
            return await operation
        except ScanSyncError as e:
            logger.error("Sync of record failed: record_id=%s, error=%s", record.id, e)
            return PushResult(record.id, PushOutcome.FAILED, error=str(e))

    async def full_sync(self) -> SyncReport:
        """Refresh the remote view, push Pending records, finish deletions.

        Records are processed oldest first and independently of each other:
        a failure on one record is reported and the pass moves on.

        Returns:
            SyncReport summarizing the pass
        """
        report = SyncReport()

        try:
            view = await self.refresh_remote_view()
        except NetworkError as e:
            report.remote_ok = False
            report.remote_error = str(e)
        else:
            report.results.extend(self._reconcile(view))

        for record in self._store.list_by_state(SyncState.PENDING, include_rejected=False):
            if not report.remote_ok and record.attempts > 0:
                # An earlier create may have landed; wait for a pass that can reconcile it
                report.results.append(
                    PushResult(
                        record.id,
                        PushOutcome.FAILED,
                        error="Create outcome unknown while the remote list is unavailable",
                    )
                )
                continue
            report.results.append(await self._isolated(record, self.push_one(record)))

        for record in self._store.list_by_state(SyncState.DELETE_PENDING, include_rejected=False):
            report.results.append(
                await self._isolated(record, self._push_remote_delete(record.id))
            )

        log_sync_summary(
            logger,
            pushed=report.pushed,
            deleted=report.deleted,
            failures=report.failures,
            remote_ok=report.remote_ok,
        )
        return report

    def resync(self, record_id: str) -> bool:
        """Clear a rejection so the next pass tries the record again."""
        cleared = self._store.clear_rejected(record_id)
        if cleared:
            logger.info("Rejected record queued for re-sync: record_id=%s", record_id)
        return cleared
