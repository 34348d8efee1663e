"""Remote record store interface and HTTP client."""

from scansync.remote.base import RemoteRecord, RemoteStore
from scansync.remote.client import RemoteStoreClient

__all__ = ["RemoteRecord", "RemoteStore", "RemoteStoreClient"]
