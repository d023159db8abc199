"""
Connection lifecycle for the event sources.

Enable and disable, push reconnection with a fixed delay, poll cadence and
the periodic eviction timer.
"""

from .config import POLL_INTERVAL, RECONNECT_DELAY, ConnectionConfig
from .manager import ChainConnection, ConnectionManager, SubscriptionFactory
from .states import ConnectionState, ConnectionStatus

__all__ = [
    "ChainConnection",
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "POLL_INTERVAL",
    "RECONNECT_DELAY",
    "SubscriptionFactory",
]
