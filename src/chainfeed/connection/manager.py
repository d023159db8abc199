"""
Connection lifecycle manager.

Drives the event sources of every chain in a topology:

- a push subscription per chain, reconnected after a fixed delay when it
  closes unexpectedly
- a poll loop per chain, polling once immediately on enable
- one safety-net eviction timer

The manager never touches the store. It hands notifications to the
`FeedService` and toggles it on enable and disable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from chainfeed import metrics
from chainfeed.feed import FeedService
from chainfeed.networks import ChainEndpoint, ChainRouter
from chainfeed.rpc import PushSubscription, WorkshareSubscription

from .config import ConnectionConfig
from .states import ConnectionState, ConnectionStatus

logger = logging.getLogger(__name__)

SubscriptionFactory = Callable[[ChainEndpoint], PushSubscription]
"""Builds the push subscription for one endpoint."""


def _default_subscription(endpoint: ChainEndpoint) -> PushSubscription:
    return WorkshareSubscription(url=endpoint.ws_url)


@dataclass(slots=True)
class ChainConnection:
    """Connection state of one chain."""

    endpoint: ChainEndpoint
    """The node endpoint."""

    state: ConnectionState = ConnectionState.DISABLED
    """Current push connection state."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    """Renderer-facing status."""

    def transition_to(self, new_state: ConnectionState) -> None:
        """
        Move to a new state.

        Raises:
            ValueError: If the transition is not allowed.
        """
        if not self.state.can_transition_to(new_state):
            raise ValueError(
                f"Invalid connection transition for {self.endpoint.name}: "
                f"{self.state.name} -> {new_state.name}"
            )

        logger.info("%s: %s -> %s", self.endpoint.name, self.state.name, new_state.name)
        self.state = new_state


@dataclass(slots=True)
class ConnectionManager:
    """
    Enables, disables and keeps alive the event sources of one feed.

    The core only sees `on_enabled_changed()`, pushed workshares and polled
    blocks.
    """

    feed: FeedService
    """Reconciliation core receiving every notification."""

    router: ChainRouter
    """Per-chain RPC clients used for polling."""

    config: ConnectionConfig = field(default_factory=ConnectionConfig)
    """Poll and reconnect timing."""

    subscription_factory: SubscriptionFactory | None = field(default=None)
    """Push subscription constructor (injectable for testing). Defaults to aiohttp."""

    _chains: dict[str, ChainConnection] = field(default_factory=dict, init=False)
    """Connection state by chain name."""

    _enabled: bool = field(default=False, init=False)
    """Whether the data source is enabled."""

    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)
    """Running loops of the current session."""

    _stopped: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    """Set when the manager is asked to stop."""

    def __post_init__(self) -> None:
        """Track every chain of the topology."""
        self._chains = {
            chain.name: ChainConnection(endpoint=chain) for chain in self.feed.topology.chains
        }

    @property
    def enabled(self) -> bool:
        """Whether the data source is enabled."""
        return self._enabled

    @property
    def chains(self) -> dict[str, ChainConnection]:
        """Connection state by chain name."""
        return dict(self._chains)

    @property
    def state(self) -> ConnectionState:
        """
        Aggregate state across chains.

        CONNECTED if any chain is connected, CONNECTING if any is connecting.
        """
        states = {connection.state for connection in self._chains.values()}
        for candidate in (
            ConnectionState.CONNECTED,
            ConnectionState.CONNECTING,
            ConnectionState.DISCONNECTED,
        ):
            if candidate in states:
                return candidate
        return ConnectionState.DISABLED

    @property
    def status(self) -> ConnectionStatus:
        """
        Aggregate renderer status across chains.

        Connected wins over Error, which wins over Disconnected.
        """
        statuses = {connection.status for connection in self._chains.values()}
        if ConnectionStatus.CONNECTED in statuses:
            return ConnectionStatus.CONNECTED
        if ConnectionStatus.ERROR in statuses:
            return ConnectionStatus.ERROR
        return ConnectionStatus.DISCONNECTED

    async def on_enabled_changed(self, enabled: bool) -> None:
        """
        Enable or disable the data source.

        Enabling connects every chain and polls immediately. Disabling
        cancels every loop, clears the feed and leaves each chain
        DISCONNECTED.
        """
        if enabled == self._enabled:
            return
        self._enabled = enabled

        if enabled:
            await self.feed.set_enabled(True)
            for name in self._chains:
                self._spawn(self._subscription_loop(name), f"push-{name}")
                self._spawn(self._poll_loop(name), f"poll-{name}")
            self._spawn(self._eviction_loop(), "eviction")
            logger.info("Data source enabled for %d chains", len(self._chains))
            return

        await self._cancel_tasks()
        await self.feed.set_enabled(False)
        for connection in self._chains.values():
            if connection.state.is_active:
                connection.transition_to(ConnectionState.DISCONNECTED)
            connection.status = ConnectionStatus.DISCONNECTED
        logger.info("Data source disabled")

    async def poll_once(self, chain_name: str) -> bool:
        """
        Poll the latest block of one chain and hand it to the feed.

        Failures are logged and counted. The next tick retries implicitly.

        Returns:
            True if a block was ingested.
        """
        client = self.router.client_for(chain_name)
        try:
            raw = await asyncio.wait_for(
                client.get_latest_block(),
                timeout=self.feed.config.request_timeout,
            )
        except TimeoutError:
            metrics.poll_failures.inc()
            logger.warning("Poll of %s timed out", chain_name)
            return False
        except Exception as exc:
            metrics.poll_failures.inc()
            logger.warning("Poll of %s failed: %s", chain_name, exc)
            return False

        if raw is None:
            logger.debug("Poll of %s returned no block", chain_name)
            return False

        await self.feed.on_poll_result(raw, chain_name)
        return True

    async def run(self) -> None:
        """
        Enable the source and run until `stop()` is called.

        On exit the source is disabled and the RPC clients are closed.
        """
        self._stopped.clear()
        try:
            await self.on_enabled_changed(True)
            await self._stopped.wait()
        finally:
            await self.on_enabled_changed(False)
            await self.router.close()

    def stop(self) -> None:
        """Request shutdown."""
        self._stopped.set()

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _cancel_tasks(self) -> None:
        tasks, self._tasks = list(self._tasks), set()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _subscription_loop(self, chain_name: str) -> None:
        """Keep one push subscription open while enabled."""
        connection = self._chains[chain_name]

        while self._enabled:
            connection.transition_to(ConnectionState.CONNECTING)
            subscription = (self.subscription_factory or _default_subscription)(
                connection.endpoint
            )
            try:
                await subscription.connect()
                connection.transition_to(ConnectionState.CONNECTED)
                connection.status = ConnectionStatus.CONNECTED

                async for workshare in subscription.messages():
                    metrics.push_messages.inc()
                    await self.feed.on_push_message(workshare, chain_name)

                logger.warning("Push connection to %s closed", chain_name)
                connection.status = ConnectionStatus.DISCONNECTED
            except Exception as exc:
                logger.warning("Push connection to %s failed: %s", chain_name, exc)
                connection.status = ConnectionStatus.ERROR
            finally:
                await subscription.close()

            connection.transition_to(ConnectionState.DISCONNECTED)

            # A disable during the delay cancels this task, so no retry follows.
            await asyncio.sleep(self.config.reconnect_delay)
            if self._enabled:
                logger.info("Reconnecting to %s", chain_name)

    async def _poll_loop(self, chain_name: str) -> None:
        """Poll one chain at a fixed cadence, starting immediately."""
        while self._enabled:
            await self.poll_once(chain_name)
            await asyncio.sleep(self.config.poll_interval)

    async def _eviction_loop(self) -> None:
        """Safety-net retention pass on a fixed interval."""
        while self._enabled:
            await asyncio.sleep(self.feed.config.eviction_interval)
            self.feed.evict()
