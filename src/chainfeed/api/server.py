"""
API server exposing the feed to renderers.

Provides HTTP endpoints for:
- /chainfeed/v0/health - Health check endpoint
- /chainfeed/v0/items - Snapshot of the item collection
- /chainfeed/v0/status - Connection status and store counters
- /chainfeed/v0/retention - Change the retention cap
- /chainfeed/v0/enabled - Enable or disable the data source
- /chainfeed/v0/backfill/{hash} - Renderer-initiated parent fetch
- /metrics - Prometheus metrics endpoint

Renderers never mutate items. Every write goes through the feed service.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from aiohttp import web

from chainfeed.metrics import generate_metrics

if TYPE_CHECKING:
    from chainfeed.connection import ConnectionManager
    from chainfeed.feed import FeedService

logger = logging.getLogger(__name__)

SERVICE_NAME: Final = "chainfeed-api"
"""Fixed service identifier returned by the health endpoint."""

_HASH_PATTERN: Final = re.compile(r"^0x[0-9a-fA-F]+$")


def _no_feed() -> FeedService | None:
    """Default feed getter that returns None."""
    return None


def _no_connection() -> ConnectionManager | None:
    """Default connection getter that returns None."""
    return None


async def _handle_health(_request: web.Request) -> web.Response:
    """Handle health check endpoint."""
    return web.json_response({"status": "healthy", "service": SERVICE_NAME})


async def _handle_metrics(_request: web.Request) -> web.Response:
    """Handle Prometheus metrics endpoint."""
    return web.Response(
        body=generate_metrics(),
        content_type="text/plain; version=0.0.4",
        charset="utf-8",
    )


async def _read_json(request: web.Request) -> dict[str, Any]:
    """Decode a JSON object body or answer 400."""
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise web.HTTPBadRequest(reason="Body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(reason="Body must be a JSON object")
    return body


@dataclass(frozen=True, slots=True)
class ApiServerConfig:
    """Configuration for the API server."""

    host: str = "0.0.0.0"
    """Host address to bind to."""

    port: int = 8547
    """Port to listen on."""

    enabled: bool = True
    """Whether the API server is enabled."""


@dataclass(slots=True)
class ApiServer:
    """
    HTTP API server for renderers and monitoring.

    Uses aiohttp to handle HTTP protocol details efficiently.
    """

    config: ApiServerConfig
    """Server configuration."""

    feed_getter: Callable[[], FeedService | None] = _no_feed
    """Callable that returns the current feed service."""

    connection_getter: Callable[[], ConnectionManager | None] = _no_connection
    """Callable that returns the connection manager, if any."""

    _runner: web.AppRunner | None = field(default=None, init=False)
    """The aiohttp application runner."""

    _site: web.TCPSite | None = field(default=None, init=False)
    """The TCP site for the server."""

    @property
    def feed(self) -> FeedService | None:
        """Get the current feed service."""
        return self.feed_getter()

    @property
    def connection(self) -> ConnectionManager | None:
        """Get the connection manager."""
        return self.connection_getter()

    def _require_feed(self) -> FeedService:
        feed = self.feed
        if feed is None:
            raise web.HTTPServiceUnavailable(reason="Feed not initialized")
        return feed

    def create_app(self) -> web.Application:
        """Build the aiohttp application with every route."""
        app = web.Application()
        app.add_routes(
            [
                web.get("/chainfeed/v0/health", _handle_health),
                web.get("/metrics", _handle_metrics),
                web.get("/chainfeed/v0/items", self._handle_items),
                web.get("/chainfeed/v0/status", self._handle_status),
                web.put("/chainfeed/v0/retention", self._handle_retention),
                web.put("/chainfeed/v0/enabled", self._handle_enabled),
                web.post("/chainfeed/v0/backfill/{hash}", self._handle_backfill),
            ]
        )
        return app

    async def start(self) -> None:
        """Start the API server in the background."""
        if not self.config.enabled:
            logger.info("API server is disabled")
            return

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        logger.info("API server listening on %s:%d", self.config.host, self.config.port)

    async def run(self) -> None:
        """
        Run the API server until shutdown.

        This method blocks until stop() is called.
        """
        await self.start()

        # Keep running until stopped
        while self._runner is not None:
            await asyncio.sleep(1)

    def stop(self) -> None:
        """Request graceful shutdown."""
        if self._runner is not None:
            asyncio.create_task(self._async_stop())

    async def _async_stop(self) -> None:
        """Gracefully stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("API server stopped")

    async def _handle_items(self, _request: web.Request) -> web.Response:
        """
        Handle the item snapshot endpoint.

        Response format:
        {
            "items": [{"id": ..., "itemType": "zoneBlock", "fullHash": ..., ...}]
        }
        """
        feed = self._require_feed()
        return web.json_response(
            {"items": [item.model_dump(mode="json", by_alias=True) for item in feed.items]}
        )

    async def _handle_status(self, _request: web.Request) -> web.Response:
        """Handle the status endpoint."""
        feed = self._require_feed()
        connection = self.connection
        progress = feed.get_progress()

        return web.json_response(
            {
                "status": connection.status.value if connection else "Disconnected",
                "state": connection.state.name if connection else "DISABLED",
                "enabled": progress.enabled,
                "maxHeight": progress.max_height,
                "tipHeight": progress.tip_height,
                "itemCount": progress.item_count,
                "maxItems": progress.max_items,
                "missingParents": progress.missing_parents,
                "inFlight": progress.in_flight,
            }
        )

    async def _handle_retention(self, request: web.Request) -> web.Response:
        """
        Change the retention cap.

        Request body: {"maxItems": <positive integer>}. The new cap applies
        from the next eviction pass.
        """
        feed = self._require_feed()
        body = await _read_json(request)

        try:
            feed.set_max_items(body.get("maxItems"))  # type: ignore[arg-type]
        except ValueError as exc:
            raise web.HTTPBadRequest(reason=str(exc)) from exc

        return web.json_response({"maxItems": feed.max_items})

    async def _handle_enabled(self, request: web.Request) -> web.Response:
        """
        Enable or disable the data source.

        Request body: {"enabled": <bool>}. Disabling clears all session state.
        """
        feed = self._require_feed()
        body = await _read_json(request)

        enabled = body.get("enabled")
        if not isinstance(enabled, bool):
            raise web.HTTPBadRequest(reason="enabled must be a boolean")

        connection = self.connection
        if connection is not None:
            await connection.on_enabled_changed(enabled)
        else:
            await feed.set_enabled(enabled)

        return web.json_response({"enabled": feed.enabled})

    async def _handle_backfill(self, request: web.Request) -> web.Response:
        """
        Fetch a parent on behalf of a renderer.

        The optional `chain` query parameter routes the lookup in
        multi-network mode. Answers 202 when a fetch was scheduled and 200
        when the ledger, the in-flight set or the store suppressed it.

        With `wait=true` the fetch runs before the response, which reports
        whether it was issued and whether the block is now stored.
        """
        feed = self._require_feed()
        block_hash = request.match_info["hash"]
        if not _HASH_PATTERN.match(block_hash):
            raise web.HTTPBadRequest(reason="hash must be 0x-prefixed hex")

        chain = request.query.get("chain")
        if request.query.get("wait", "").lower() in ("1", "true"):
            fetched = await feed.fetch_and_insert_parent(block_hash, chain)
            stored = any(item.full_hash == block_hash for item in feed.items)
            return web.json_response({"fetched": fetched, "stored": stored})

        scheduled = feed.request_parent(block_hash, chain)
        return web.json_response({"scheduled": scheduled}, status=202 if scheduled else 200)
