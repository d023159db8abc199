"""
Event source adapter for a Quai node.

- `QuaiRpcClient`: HTTP JSON-RPC for polling and point lookups (httpx)
- `WorkshareSubscription`: WebSocket push of new workshares (aiohttp)
"""

from .client import GET_BLOCK_BY_HASH, GET_BLOCK_BY_NUMBER, QuaiRpcClient, RpcError
from .subscription import (
    NEW_WORKSHARES,
    SUBSCRIBE_METHOD,
    PushSubscription,
    WorkshareSubscription,
)

__all__ = [
    "GET_BLOCK_BY_HASH",
    "GET_BLOCK_BY_NUMBER",
    "NEW_WORKSHARES",
    "PushSubscription",
    "QuaiRpcClient",
    "RpcError",
    "SUBSCRIBE_METHOD",
    "WorkshareSubscription",
]
