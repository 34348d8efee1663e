"""scansync - capture, persist and sync scanned barcodes and QR codes."""

__version__ = "0.1.0"
