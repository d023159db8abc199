"""Shared builders and mocks for feed tests."""

from .builders import block_payload, make_hash, make_item, raw_block
from .mocks import (
    ManualClock,
    MockBlockSource,
    MockRpcClient,
    MockSubscription,
    MockSubscriptionFactory,
)

__all__ = [
    "ManualClock",
    "MockBlockSource",
    "MockRpcClient",
    "MockSubscription",
    "MockSubscriptionFactory",
    "block_payload",
    "make_hash",
    "make_item",
    "raw_block",
]
