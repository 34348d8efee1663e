"""Async HTTP client for the remote record store."""

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from scansync import __version__
from scansync.errors import NetworkError, RejectedError
from scansync.remote.base import RemoteRecord

logger = logging.getLogger(__name__)

# 4xx codes that still mean "try again later"
_RETRYABLE_CLIENT_CODES = {408, 425, 429}


class RemoteStoreClient:
    """Thin async adapter over the ``/codigos`` HTTP+JSON API.

    Uses httpx.AsyncClient for connection pooling. Every call is bounded by
    the configured timeout. No retry policy lives here: transient failures
    surface as NetworkError and the sync engine decides when to try again.
    """

    def __init__(
        self,
        server_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the record server (e.g., http://localhost:3000)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used to fake the server in tests)
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": f"scansync/{__version__}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.ConnectError as e:
            raise NetworkError(f"Connection error: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"HTTP error: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the server's ``{message}`` from an error body."""
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            return response.text or response.reason_phrase
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.text or response.reason_phrase

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if 400 <= status < 500 and status not in _RETRYABLE_CLIENT_CODES:
            raise RejectedError(self._error_message(response), status_code=status)
        raise NetworkError(f"Server error: {status}")

    async def list(self) -> list[RemoteRecord]:
        """Fetch every record the server holds.

        Raises:
            NetworkError: On timeout, unreachable server, non-2xx or malformed body
        """
        response = await self._request("GET", "/codigos")
        if not 200 <= response.status_code < 300:
            raise NetworkError(f"Server error: {response.status_code}")

        try:
            items = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise NetworkError(f"Malformed response: {e}") from e
        if not isinstance(items, list):
            raise NetworkError("Malformed response: expected a JSON array")

        records = []
        for item in items:
            if not isinstance(item, dict) or item.get("id") is None:
                logger.warning("Skipping malformed remote record: %r", item)
                continue
            records.append(
                RemoteRecord(
                    id=str(item["id"]),
                    data=str(item.get("data", "")),
                    type=str(item.get("type") or "qr"),
                    client_id=item.get("client_id"),
                )
            )
        return records

    async def create(self, payload: str, symbology: str, client_id: str | None = None) -> str:
        """Create a record on the server.

        Args:
            payload: Record content (sent as ``data``)
            symbology: Code format tag (sent as ``type``)
            client_id: Idempotency key identifying the local record

        Returns:
            Remote-assigned record id

        Raises:
            NetworkError: Transient failure, safe to retry
            RejectedError: The server refused the record (e.g. validation)
        """
        body: dict[str, Any] = {"data": payload, "type": symbology}
        headers = {"Content-Type": "application/json;encoding=utf-8"}
        if client_id:
            body["client_id"] = client_id
            headers["Idempotency-Key"] = client_id

        response = await self._request("POST", "/codigos", json=body, headers=headers)
        self._raise_for_status(response)

        try:
            created = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise NetworkError(f"Malformed create response: {e}") from e
        if not isinstance(created, dict) or created.get("id") is None:
            raise NetworkError("Create response did not include an id")
        return str(created["id"])

    async def delete(self, remote_id: str) -> None:
        """Delete a record on the server. A 404 counts as already deleted.

        Raises:
            NetworkError: Transient failure, safe to retry
            RejectedError: The server refused the deletion
        """
        response = await self._request("DELETE", f"/codigos/{quote(remote_id, safe='')}")
        if response.status_code == 404:
            logger.debug("Remote record already absent: remote_id=%s", remote_id)
            return
        self._raise_for_status(response)

    async def check_server(self) -> bool:
        """Check if the server is reachable.

        Returns:
            True if the record listing answers with 2xx, False otherwise
        """
        try:
            response = await self._client.get("/codigos", timeout=httpx.Timeout(5.0))
            return 200 <= response.status_code < 300
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteStoreClient":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
