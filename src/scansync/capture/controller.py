"""Entry point for scanner events and user deletions."""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from scansync.capture.dedup import BurstDeduplicator
from scansync.errors import InvalidCapture, ScanSyncError
from scansync.logging import log_capture_accepted, log_capture_skipped
from scansync.store.local import LocalStore
from scansync.store.models import Record
from scansync.sync.engine import PushOutcome, PushResult, SyncEngine

logger = logging.getLogger(__name__)


class CaptureController:
    """Turns decoded scans into durable records and kicks off their sync.

    Scans are stored synchronously; the push to the remote store runs as a
    background task on the current event loop so the scanner never waits
    on the network. Without a running loop the record simply stays Pending
    until the next full sync.

    Example:
        controller = CaptureController(store, engine)
        controller.on_sync_result(lambda r: print(r.outcome))
        record = controller.on_scan("ABC123", "qr")
    """

    def __init__(
        self,
        store: LocalStore,
        engine: SyncEngine,
        dedup_window: float = 2.0,
        default_symbology: str = "qr",
        symbology_aliases: dict[str, str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Local record store
            engine: Sync engine used for background pushes
            dedup_window: Seconds during which an identical scan is dropped
            default_symbology: Tag used when the scanner reports none
            symbology_aliases: Scanner-reported names mapped to canonical tags
            clock: Monotonic time source for burst de-duplication
        """
        self._store = store
        self._engine = engine
        self._dedup = BurstDeduplicator(window=dedup_window, clock=clock)
        self.default_symbology = default_symbology
        self._aliases = {k.lower(): v for k, v in (symbology_aliases or {}).items()}

        self._tasks: set[asyncio.Task] = set()
        self._result_callbacks: list[Callable[[PushResult], None]] = []

    def on_sync_result(self, callback: Callable[[PushResult], None]) -> None:
        """Register callback for results of background pushes and deletions.

        Args:
            callback: Function called with each PushResult
        """
        self._result_callbacks.append(callback)

    def _notify_result(self, result: PushResult) -> None:
        for callback in self._result_callbacks:
            try:
                callback(result)
            except Exception:
                logger.exception("Sync result callback failed")

    def normalize_symbology(self, symbology: str | None) -> str:
        """Canonical lower-case symbology tag, defaulting when absent."""
        if symbology is None or not symbology.strip():
            return self.default_symbology
        tag = symbology.strip()
        return self._aliases.get(tag.lower(), tag.lower())

    def on_scan(self, payload: str, symbology: str | None = None) -> Record | None:
        """Handle one decoded scan event.

        Args:
            payload: Decoded content of the code
            symbology: Code format reported by the scanner, if any

        Returns:
            The new record, or None if the scan repeated a recent one

        Raises:
            InvalidCapture: If the payload is not a non-empty string
            PersistenceError: If the record could not be stored
        """
        if not isinstance(payload, str) or payload == "":
            log_capture_skipped(logger, "invalid")
            raise InvalidCapture("Scan payload must be a non-empty string")

        tag = self.normalize_symbology(symbology)
        if self._dedup.is_duplicate(payload, tag):
            log_capture_skipped(logger, "duplicate_burst", symbology=tag)
            return None

        record = self._store.insert(payload, tag)
        self._dedup.record_accepted(payload, tag)
        log_capture_accepted(logger, record.id, tag)

        self._schedule(lambda: self._engine.push_one(record), record.id)
        return record

    def on_delete_request(self, record_id: str) -> PushResult:
        """Handle a user request to delete a record.

        The record disappears from local reads before this returns. If it
        had reached the remote store, the remote delete runs in the
        background.

        Returns:
            PushResult of the local step (PURGED, QUEUED or NOOP)
        """
        step = self._engine.begin_deletion(record_id)
        if step.outcome == PushOutcome.QUEUED:
            record = self._store.get(record_id)
            if record is not None:
                self._schedule(lambda: self._engine.push_deletion(record), record_id)
        return step

    def _schedule(self, factory: Callable[[], Awaitable[PushResult]], record_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop, leaving record for next sync: record_id=%s", record_id)
            return

        task = loop.create_task(self._run_background(factory, record_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_background(
        self, factory: Callable[[], Awaitable[PushResult]], record_id: str
    ) -> None:
        try:
            result = await factory()
        except ScanSyncError as e:
            logger.error("Background sync failed: record_id=%s, error=%s", record_id, e)
            result = PushResult(record_id, PushOutcome.FAILED, error=str(e))
        except Exception:
            logger.exception("Background sync crashed: record_id=%s", record_id)
            return
        self._notify_result(result)

    @property
    def pending_tasks(self) -> int:
        """Number of background pushes still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all background pushes and deletions to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
