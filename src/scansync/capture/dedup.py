"""Time-windowed de-duplication of repeated scan events."""

import time
from typing import Callable


class BurstDeduplicator:
    """Drops re-reads of the same code within a short window.

    A camera held over a stationary code reports it on every frame. Only
    the first read inside ``window`` seconds counts; later reads of the
    same ``(payload, symbology)`` pair are duplicates. Reads after the
    window has elapsed count as new captures.
    """

    def __init__(self, window: float = 2.0, clock: Callable[[], float] = time.monotonic):
        """Initialize the deduplicator.

        Args:
            window: Seconds during which an identical scan is a duplicate
            clock: Monotonic time source in seconds
        """
        self.window = window
        self._clock = clock
        self.last_accepted: dict[tuple[str, str], float] = {}

    def is_duplicate(self, payload: str, symbology: str) -> bool:
        """Check whether this scan repeats one accepted within the window."""
        last = self.last_accepted.get((payload, symbology))
        if last is None:
            return False
        return (self._clock() - last) < self.window

    def record_accepted(self, payload: str, symbology: str) -> None:
        """Remember that a scan was accepted.

        Call this only after the scan was stored, so a failed insert does
        not suppress the retry.
        """
        now = self._clock()
        self.last_accepted[(payload, symbology)] = now
        self._prune(now)

    def _prune(self, now: float) -> None:
        expired = [key for key, ts in self.last_accepted.items() if now - ts >= self.window]
        for key in expired:
            del self.last_accepted[key]
