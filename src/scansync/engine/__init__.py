"""Engine module assembling and running the scan agent."""

from scansync.engine.agent import ScanAgent

__all__ = ["ScanAgent"]
