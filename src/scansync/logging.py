"""Structured JSON logging for scansync.

Provides audit-friendly logging with contextual fields for capture events,
push operations, and record state changes. Payload contents are never
logged, only record ids and symbologies.

Usage:
    import logging

    from scansync.logging import setup_logging, log_sync_summary

    setup_logging("INFO", device_id="scanner-01")
    log = logging.getLogger("scansync.sync")
    log_sync_summary(log, pushed=3, deleted=0, failures=0, remote_ok=True)
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

from scansync import __version__

# Default device identifier (can be overridden)
_device_id: str | None = None


class ScanSyncJsonFormatter(JsonFormatter):
    """JSON formatter that adds agent context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        log_record["agent_version"] = __version__
        if _device_id:
            log_record["device_id"] = _device_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    device_id: str | None = None,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        device_id: Identifier for this device
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    global _device_id
    if device_id:
        _device_id = device_id

    formatter = ScanSyncJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr so stdout stays clean for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


# --- Audit Event Functions ---


def log_capture_accepted(
    logger: logging.Logger,
    record_id: str,
    symbology: str,
) -> None:
    """Log a scan that became a new record."""
    logger.info(
        "Capture accepted",
        extra={
            "event": "capture_accepted",
            "record_id": record_id,
            "symbology": symbology,
        },
    )


def log_capture_skipped(
    logger: logging.Logger,
    reason: str,
    symbology: str | None = None,
) -> None:
    """Log a scan that was dropped.

    Args:
        logger: Logger instance
        reason: Why the scan was dropped (duplicate_burst, invalid)
        symbology: Optional symbology of the dropped scan
    """
    extra = {
        "event": "capture_skipped",
        "reason": reason,
    }
    if symbology is not None:
        extra["symbology"] = symbology
    logger.debug("Capture skipped", extra=extra)


def log_push_success(
    logger: logging.Logger,
    record_id: str,
    operation: str,
    remote_id: str | None,
    response_time_ms: float,
) -> None:
    """Log a remote create or delete that the server acknowledged."""
    logger.info(
        "Push successful",
        extra={
            "event": "push_success",
            "record_id": record_id,
            "operation": operation,
            "remote_id": remote_id,
            "response_time_ms": response_time_ms,
        },
    )


def log_push_failed(
    logger: logging.Logger,
    record_id: str,
    operation: str,
    error: str,
    attempt_count: int,
    retryable: bool,
) -> None:
    """Log a failed remote create or delete.

    Args:
        logger: Logger instance
        record_id: Local record id
        operation: create or delete
        error: Error message
        attempt_count: Which attempt this was
        retryable: Whether a later sync pass will try again
    """
    logger.warning(
        "Push failed",
        extra={
            "event": "push_failed",
            "record_id": record_id,
            "operation": operation,
            "error": error,
            "attempt_count": attempt_count,
            "retryable": retryable,
        },
    )


def log_state_change(
    logger: logging.Logger,
    record_id: str,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a record state transition."""
    extra = {
        "event": "state_change",
        "record_id": record_id,
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("State changed", extra=extra)


def log_sync_summary(
    logger: logging.Logger,
    pushed: int,
    deleted: int,
    failures: int,
    remote_ok: bool,
) -> None:
    """Log the outcome of a full sync pass."""
    logger.info(
        "Sync pass finished",
        extra={
            "event": "sync_summary",
            "pushed": pushed,
            "deleted": deleted,
            "failures": failures,
            "remote_ok": remote_ok,
        },
    )
