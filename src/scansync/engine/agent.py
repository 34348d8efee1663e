"""Scan agent assembling local store, remote client, sync engine and capture."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from scansync.capture.controller import CaptureController
from scansync.config import Settings
from scansync.errors import ScanSyncError
from scansync.remote.client import RemoteStoreClient
from scansync.store.local import LocalStore
from scansync.store.models import Record
from scansync.sync.engine import PushOutcome, PushResult, SyncEngine, SyncReport

logger = logging.getLogger(__name__)


class ScanAgent:
    """High-level owner of the capture-persist-sync components.

    Builds every component from Settings and hands each one its
    collaborators explicitly. Runs a background worker that performs a
    full sync every ``sync_interval`` seconds or as soon as
    ``force_sync()`` is called. This is the main entry point for the CLI.

    Example:
        agent = ScanAgent(settings)
        await agent.start()
        agent.scan("ABC123", "qr")
        # ... run until stopped ...
        await agent.stop()
    """

    def __init__(
        self,
        config: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the agent.

        Args:
            config: Settings instance with all configuration
            transport: Optional httpx transport for the remote client

        Raises:
            PersistenceError: If the local store cannot be opened
        """
        self.config = config
        self._log = logger

        self.store = LocalStore(config.db_path)
        self.remote = RemoteStoreClient(
            server_url=config.server_url,
            timeout=config.request_timeout,
            transport=transport,
        )
        self.engine = SyncEngine(self.store, self.remote)
        self.controller = CaptureController(
            self.store,
            self.engine,
            dedup_window=config.dedup_window,
            default_symbology=config.default_symbology,
            symbology_aliases=config.load_symbology_aliases(),
        )
        self.controller.on_sync_result(self._handle_sync_result)

        # State tracking
        self._running = False
        self._closed = False
        self._sync_task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._last_report: SyncReport | None = None
        self._last_sync_time: datetime | None = None
        self._scan_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_report(self) -> SyncReport | None:
        """Report of the most recent background sync pass."""
        return self._last_report

    async def start(self) -> None:
        """Start the background sync worker."""
        if self._running:
            return

        self._running = True
        self._log.info("Starting scan agent, data_dir=%s, server=%s",
                       self.config.data_path, self.config.server_url)
        self._sync_task = asyncio.create_task(self._sync_worker())

    def scan(self, payload: str, symbology: str | None = None) -> Record | None:
        """Feed one scanner event into the capture controller."""
        record = self.controller.on_scan(payload, symbology)
        if record is not None:
            self._scan_count += 1
        return record

    def delete(self, record_id: str) -> PushResult:
        """Handle a user deletion request."""
        return self.controller.on_delete_request(record_id)

    async def sync_now(self) -> SyncReport:
        """Run one full sync pass in the caller's task."""
        report = await self.engine.full_sync()
        self._last_report = report
        self._last_sync_time = datetime.now(timezone.utc)
        return report

    def _handle_sync_result(self, result: PushResult) -> None:
        """Report background push results that need the user's attention."""
        if result.outcome == PushOutcome.REJECTED:
            self._log.warning("Record rejected by server: record_id=%s, error=%s",
                              result.record_id, result.error)
        else:
            self._log.debug("Background sync: record_id=%s, outcome=%s",
                            result.record_id, result.outcome.value)

    async def _sync_worker(self) -> None:
        """Background worker running full sync passes.

        Sleeps ``sync_interval`` seconds between passes unless woken by
        ``force_sync()``.
        """
        while self._running:
            try:
                report = await self.sync_now()
                if report.failures or not report.remote_ok:
                    self._log.warning(
                        "Sync pass incomplete: failures=%d, remote_error=%s",
                        report.failures, report.remote_error,
                    )
            except asyncio.CancelledError:
                break
            except ScanSyncError as e:
                self._log.error("Sync worker error: %s", e)

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.sync_interval)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break
            self._wake.clear()

    def force_sync(self) -> None:
        """Wake the sync worker for an immediate pass."""
        self._log.debug("Force sync requested")
        self._wake.set()

    async def stop(self) -> None:
        """Stop the agent gracefully.

        Stops the sync worker, waits for in-flight background pushes,
        and closes resources.
        """
        self._running = False

        if self._sync_task and not self._sync_task.done():
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass

        await self.close()
        self._log.info("Scan agent stopped, total_scans=%d", self._scan_count)

    async def close(self) -> None:
        """Drain background work and release the store and HTTP client."""
        if self._closed:
            return
        self._closed = True
        await self.controller.drain()
        await self.remote.close()
        self.store.close()

    async def __aenter__(self) -> "ScanAgent":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def get_status(self) -> dict[str, Any]:
        """Get current agent status.

        Returns:
            Dictionary with record counts, remote view state and last sync info
        """
        stats = self.store.get_stats()
        report = self._last_report

        return {
            "running": self._running,
            "scan_count": self._scan_count,
            "records": stats,
            "background_tasks": self.controller.pending_tasks,
            "remote": {
                "cached": len(self.engine.remote_view),
                "refreshed_at": (
                    self.engine.remote_view_at.isoformat()
                    if self.engine.remote_view_at
                    else None
                ),
                "error": self.engine.remote_view_error,
            },
            "last_sync": (
                {
                    "at": self._last_sync_time.isoformat() if self._last_sync_time else None,
                    **report.to_dict(),
                }
                if report
                else None
            ),
            "server_url": self.config.server_url,
            "data_dir": str(self.config.data_path),
        }
