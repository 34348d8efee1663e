"""Shared fixtures: a temporary local store and a fake /codigos server."""

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from scansync.config import Settings
from scansync.remote.client import RemoteStoreClient
from scansync.store.local import LocalStore

SERVER_URL = "http://codes.test"


class FakeCodigosServer:
    """In-memory implementation of the /codigos API behind httpx.MockTransport.

    Knobs:
        down: every request fails with a connection error
        list_down: only GET /codigos fails with a connection error
        fail_creates: number of upcoming creates answered with 503
        reject_payloads: payloads answered with 422 and a message
        lose_create_ack: store the next create but time out the response
        echo_client_id: keep and return the client_id sent on create
        delay: seconds each request takes
    """

    def __init__(self) -> None:
        self.records: dict[str, dict] = {}
        self.next_id = 1
        self.down = False
        self.list_down = False
        self.fail_creates = 0
        self.reject_payloads: set[str] = set()
        self.lose_create_ack = False
        self.echo_client_id = True
        self.delay = 0.0
        self.requests: list[tuple[str, str]] = []
        self.idempotency_keys: list[str | None] = []
        self.transport = httpx.MockTransport(self.handle)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.requests if m == method)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path == "/codigos" and request.method == "GET":
            if self.list_down:
                raise httpx.ConnectError("Connection refused", request=request)
            return httpx.Response(200, json=list(self.records.values()))
        if path == "/codigos" and request.method == "POST":
            return self._create(request)
        if path.startswith("/codigos/") and request.method == "DELETE":
            remote_id = path.rsplit("/", 1)[1]
            if self.records.pop(remote_id, None) is None:
                return httpx.Response(404, json={"message": "Not found"})
            return httpx.Response(204)
        return httpx.Response(404, json={"message": "Not found"})

    def _create(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.idempotency_keys.append(request.headers.get("Idempotency-Key"))
        data = body.get("data")
        if not data:
            return httpx.Response(400, json={"message": "data is required"})
        if data in self.reject_payloads:
            return httpx.Response(422, json={"message": f"invalid code: {data}"})
        if self.fail_creates > 0:
            self.fail_creates -= 1
            return httpx.Response(503, text="Service Unavailable")

        remote_id = f"r-{self.next_id}"
        self.next_id += 1
        record = {"id": remote_id, "data": data, "type": body.get("type", "qr")}
        if self.echo_client_id and body.get("client_id"):
            record["client_id"] = body["client_id"]
        self.records[remote_id] = record

        if self.lose_create_ack:
            self.lose_create_ack = False
            raise httpx.ReadTimeout("Response lost", request=request)
        return httpx.Response(201, json=record)


def remote_for(server: FakeCodigosServer, timeout: float = 5.0) -> RemoteStoreClient:
    """Remote client wired to the fake server. Use inside ``async with``."""
    return RemoteStoreClient(SERVER_URL, timeout=timeout, transport=server.transport)


@pytest.fixture
def server() -> FakeCodigosServer:
    return FakeCodigosServer()


@pytest.fixture
def store(tmp_path: Path):
    local = LocalStore(tmp_path / "records.db")
    yield local
    local.close()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        server_url=SERVER_URL,
        data_dir=tmp_path / "data",
        symbologies_file=tmp_path / "symbologies.yaml",
        sync_interval=1,
        request_timeout=5.0,
    )
