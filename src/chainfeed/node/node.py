"""
Feed node orchestrator.

Wires together all services and runs them with structured concurrency.

One node observes one topology: a feed service owning the reconciliation
store, a connection manager driving the event sources, and an optional API
server for renderers.
"""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass, field

from chainfeed.api import ApiServer, ApiServerConfig
from chainfeed.connection import ConnectionConfig, ConnectionManager, SubscriptionFactory
from chainfeed.feed import FeedConfig, FeedService
from chainfeed.networks import ChainRouter, ClientFactory, NetworkTopology


@dataclass(frozen=True, slots=True)
class NodeConfig:
    """
    Configuration for a feed node.

    Provides all parameters needed to wire the services of one topology.
    """

    topology: NetworkTopology
    """Chains to observe."""

    feed: FeedConfig = field(default_factory=FeedConfig)
    """Reconciliation core tunables."""

    connection: ConnectionConfig | None = field(default=None)
    """Connection timing. Defaults to the topology's poll interval."""

    api_config: ApiServerConfig | None = field(default=None)
    """Optional API server configuration. If None, API server is disabled."""

    client_factory: ClientFactory | None = field(default=None)
    """Optional RPC client constructor (injectable for testing)."""

    subscription_factory: SubscriptionFactory | None = field(default=None)
    """Optional push subscription constructor (injectable for testing)."""


@dataclass(slots=True)
class FeedNode:
    """
    Feed node orchestrator.

    Use `from_config()` to wire every service, then `run()` until shutdown.
    """

    feed: FeedService
    """Reconciliation core."""

    connection: ConnectionManager
    """Event source lifecycle."""

    api_server: ApiServer | None = field(default=None)
    """Optional API server for renderers."""

    _shutdown: asyncio.Event = field(default_factory=asyncio.Event)
    """Event signaling shutdown request."""

    @classmethod
    def from_config(cls, config: NodeConfig) -> FeedNode:
        """
        Wire every service for one topology.

        Args:
            config: Node configuration.

        Returns:
            A node ready to run.
        """
        topology = config.topology

        router = ChainRouter(topology=topology, client_factory=config.client_factory)

        feed = FeedService(topology=topology, source=router, config=config.feed)

        connection_config = config.connection or ConnectionConfig(
            poll_interval=topology.poll_interval
        )
        connection = ConnectionManager(
            feed=feed,
            router=router,
            config=connection_config,
            subscription_factory=config.subscription_factory,
        )

        api_server = None
        if config.api_config is not None and config.api_config.enabled:
            api_server = ApiServer(
                config=config.api_config,
                feed_getter=lambda: feed,
                connection_getter=lambda: connection,
            )

        return cls(feed=feed, connection=connection, api_server=api_server)

    async def run(self, *, install_signal_handlers: bool = True) -> None:
        """
        Run all services until shutdown.

        Returns when shutdown is requested or a service fails.

        Args:
            install_signal_handlers: Whether to handle SIGINT/SIGTERM.
                Disable for testing or non-main threads.
        """
        if install_signal_handlers:
            self._install_signal_handlers()

        # Run services concurrently.
        #
        # A separate task monitors the shutdown signal.
        # When triggered, it stops all services.
        async with asyncio.TaskGroup() as tg:
            tg.create_task(self.connection.run())
            if self.api_server is not None:
                tg.create_task(self.api_server.run())
            tg.create_task(self._wait_shutdown())

    def _install_signal_handlers(self) -> None:
        """
        Install signal handlers for graceful shutdown.

        Silently ignores errors if handlers cannot be installed.
        This happens in non-main threads or embedded contexts.
        """
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._shutdown.set)
        except (ValueError, RuntimeError, NotImplementedError):
            # Cannot add handlers outside main thread.
            pass

    async def _wait_shutdown(self) -> None:
        """Wait for shutdown signal then stop services."""
        await self._shutdown.wait()

        self.connection.stop()
        if self.api_server is not None:
            self.api_server.stop()

    def stop(self) -> None:
        """Request graceful shutdown."""
        self._shutdown.set()

    @property
    def is_running(self) -> bool:
        """Check if node is currently running."""
        return not self._shutdown.is_set()
