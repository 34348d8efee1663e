"""Interface the sync engine depends on for the remote record store."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class RemoteRecord:
    """A record as the remote store reports it."""

    id: str
    data: str
    type: str
    client_id: str | None = None  # echoed idempotency key, if the server keeps it

    def to_dict(self) -> dict:
        return {"id": self.id, "data": self.data, "type": self.type, "client_id": self.client_id}


class RemoteStore(Protocol):
    """List/create/delete of records on a network service.

    Implementations raise NetworkError for transient failures and
    RejectedError for permanent ones. They never retry.
    """

    async def list(self) -> list[RemoteRecord]: ...

    async def create(
        self, payload: str, symbology: str, client_id: str | None = None
    ) -> str: ...

    async def delete(self, remote_id: str) -> None: ...
