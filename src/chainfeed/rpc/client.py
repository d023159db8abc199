"""
JSON-RPC client for a Quai node over HTTP.

The feed uses two read-only calls:

- `quai_getBlockByNumber("latest", true)` for the poll loop
- `quai_getBlockByHash(hash, false)` for parent backfill

Both return the same block shape, parsed by `chainfeed.items.parse_block`.
Headers only: backfill never needs transaction bodies.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Final

import httpx

from chainfeed import metrics
from chainfeed.items import RawBlock, parse_block
from chainfeed.reconcile.config import REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

GET_BLOCK_BY_NUMBER: Final[str] = "quai_getBlockByNumber"
"""Method used to poll the chain tip."""

GET_BLOCK_BY_HASH: Final[str] = "quai_getBlockByHash"
"""Method used for point lookups."""


class RpcError(Exception):
    """
    A JSON-RPC call failed.

    Covers transport errors, non-2xx responses, undecodable bodies and
    JSON-RPC error objects. Callers treat it as a transient failure.
    """

    def __init__(self, method: str, message: str) -> None:
        """Record the failing method alongside the message."""
        super().__init__(f"{method}: {message}")
        self.method = method


@dataclass(slots=True)
class QuaiRpcClient:
    """
    Minimal async JSON-RPC 2.0 client.

    The underlying httpx client is created lazily and reused across calls.
    """

    url: str
    """HTTP endpoint of the node."""

    timeout: float = REQUEST_TIMEOUT
    """Per-request timeout in seconds."""

    transport: httpx.AsyncBaseTransport | None = None
    """Optional transport override (used by tests)."""

    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)
    """Shared HTTP client."""

    _ids: itertools.count[int] = field(default_factory=lambda: itertools.count(1), repr=False)
    """Request id sequence."""

    async def __aenter__(self) -> QuaiRpcClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, params: list[Any]) -> Any:
        """
        Perform one JSON-RPC call.

        Returns:
            The `result` member, which may be None.

        Raises:
            RpcError: On any transport or protocol failure.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        with metrics.rpc_request_time.time():
            try:
                response = await self._http().post(self.url, json=payload)
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPStatusError as exc:
                raise RpcError(
                    method, f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
                ) from exc
            except httpx.RequestError as exc:
                raise RpcError(method, f"network error: {exc}") from exc
            except ValueError as exc:
                raise RpcError(method, f"undecodable response: {exc}") from exc

        if not isinstance(body, dict):
            raise RpcError(method, "response is not a JSON object")

        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcError(method, message or "unknown error")

        return body.get("result")

    async def get_latest_block(self) -> RawBlock | None:
        """
        Fetch the chain tip with its uncle and workshare summaries.

        Raises:
            RpcError: If the call fails.
            ParseError: If the block is malformed.
        """
        result = await self.call(GET_BLOCK_BY_NUMBER, ["latest", True])
        if result is None:
            return None
        return parse_block(result)

    async def get_block_by_hash(self, block_hash: str) -> RawBlock | None:
        """
        Fetch a block header summary by hash.

        Returns:
            The block, or None if the node does not know the hash.

        Raises:
            RpcError: If the call fails.
            ParseError: If the block is malformed.
        """
        result = await self.call(GET_BLOCK_BY_HASH, [block_hash, False])
        if result is None:
            return None
        return parse_block(result)
