"""
WebSocket push subscription for new workshares.

After the socket opens, a `quai_subscribe` request for `newWorkshares` is
sent. The node then pushes `quai_subscription` messages. Anything that is
not a well-formed workshare event (the subscription acknowledgement,
unrelated notifications, bad JSON) is skipped without closing the socket.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Final, Protocol

import aiohttp

from chainfeed.items import ParseError, RawWorkshare, parse_subscription_message

from .client import RpcError

logger = logging.getLogger(__name__)

SUBSCRIBE_METHOD: Final[str] = "quai_subscribe"
"""JSON-RPC method opening a subscription."""

NEW_WORKSHARES: Final[str] = "newWorkshares"
"""Subscription topic for workshare notifications."""

SUBSCRIBE_REQUEST_ID: Final[int] = 2
"""Request id of the subscribe call."""


class PushSubscription(Protocol):
    """A connected source of pushed workshares."""

    async def connect(self) -> None:
        """Open the connection and subscribe."""
        ...

    def messages(self) -> AsyncIterator[RawWorkshare]:
        """Yield workshares until the connection closes."""
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...


@dataclass(slots=True)
class WorkshareSubscription:
    """Workshare subscription over an aiohttp WebSocket."""

    url: str
    """WebSocket endpoint of the node."""

    heartbeat: float | None = 30.0
    """Ping interval in seconds; a missed pong closes the socket."""

    _session: aiohttp.ClientSession | None = field(default=None, init=False, repr=False)
    """HTTP session owning the socket."""

    _ws: aiohttp.ClientWebSocketResponse | None = field(default=None, init=False, repr=False)
    """The open socket."""

    async def connect(self) -> None:
        """
        Open the socket and send the subscribe request.

        Raises:
            RpcError: If the socket cannot be opened.
        """
        await self.close()
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
            await self._ws.send_json(
                {
                    "jsonrpc": "2.0",
                    "id": SUBSCRIBE_REQUEST_ID,
                    "method": SUBSCRIBE_METHOD,
                    "params": [NEW_WORKSHARES],
                }
            )
        except (aiohttp.ClientError, OSError) as exc:
            await self.close()
            raise RpcError(SUBSCRIBE_METHOD, f"cannot connect to {self.url}: {exc}") from exc

    async def messages(self) -> AsyncIterator[RawWorkshare]:
        """
        Yield pushed workshares until the socket closes.

        Raises:
            RpcError: If the socket reports an error.
        """
        if self._ws is None:
            raise RpcError(SUBSCRIBE_METHOD, "not connected")

        async for message in self._ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(message.data)
                except ValueError as exc:
                    logger.warning("Ignoring undecodable push message: %s", exc)
                    continue

                try:
                    workshare = parse_subscription_message(data)
                except ParseError as exc:
                    logger.warning("Dropping malformed pushed workshare: %s", exc)
                    continue

                if workshare is None:
                    logger.debug("Ignoring non-workshare push message")
                    continue
                yield workshare

            elif message.type == aiohttp.WSMsgType.ERROR:
                raise RpcError(SUBSCRIBE_METHOD, f"socket error: {self._ws.exception()}")

    async def close(self) -> None:
        """Close the socket and its session."""
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None
