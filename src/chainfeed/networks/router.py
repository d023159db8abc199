"""Routing of point lookups to the chain that produced an item."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from chainfeed.items import RawBlock
from chainfeed.rpc import QuaiRpcClient

from .topology import ChainEndpoint, NetworkTopology

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ChainEndpoint], QuaiRpcClient]
"""Builds the RPC client for one endpoint."""


def _default_client(endpoint: ChainEndpoint) -> QuaiRpcClient:
    return QuaiRpcClient(url=endpoint.http_url)


@dataclass(slots=True)
class ChainRouter:
    """
    One RPC client per chain, selected by chain name.

    Lookups for an unknown or absent chain name go to the topology's first
    endpoint.
    """

    topology: NetworkTopology
    """Chains to route between."""

    client_factory: ClientFactory | None = field(default=None)
    """Client constructor (injectable for testing). Defaults to one httpx client per URL."""

    _clients: dict[str, QuaiRpcClient] = field(default_factory=dict, init=False)
    """Clients by chain name, created on first use."""

    def client_for(self, chain_name: str | None) -> QuaiRpcClient:
        """Client for a chain, falling back to the default chain."""
        endpoint = self.topology.chain(chain_name) or self.topology.default_chain
        client = self._clients.get(endpoint.name)
        if client is None:
            factory = self.client_factory or _default_client
            client = factory(endpoint)
            self._clients[endpoint.name] = client
        return client

    async def fetch_block_by_hash(
        self,
        block_hash: str,
        chain_name: str | None = None,
    ) -> RawBlock | None:
        """Point lookup on the chain that produced the referencing item."""
        return await self.client_for(chain_name).get_block_by_hash(block_hash)

    async def close(self) -> None:
        """Close every client created so far."""
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.close()
