"""Capture module - scan intake and burst de-duplication."""

from scansync.capture.controller import CaptureController
from scansync.capture.dedup import BurstDeduplicator

__all__ = ["BurstDeduplicator", "CaptureController"]
