"""Network topologies and per-chain request routing."""

from .router import ChainRouter, ClientFactory
from .topology import (
    BUILTIN_TOPOLOGIES,
    DEMO_2X2,
    MAINNET,
    ChainEndpoint,
    NetworkTopology,
    TopologyError,
)

__all__ = [
    "BUILTIN_TOPOLOGIES",
    "ChainEndpoint",
    "ChainRouter",
    "ClientFactory",
    "DEMO_2X2",
    "MAINNET",
    "NetworkTopology",
    "TopologyError",
]
