"""
Reconciliation core.

How It Works
------------
- Expanded items enter the `ItemStore` through one insertion path
- Duplicates are absorbed, late inclusion links are attached in place
- Parents missing from the store are recorded in the ledger and handed to
  the `ParentResolver`, which fetches them (one hop only)
- The retention policy keeps the collection under a runtime cap
"""

from __future__ import annotations

__all__ = [
    # Store
    "ItemStore",
    "InsertOutcome",
    "ParentGap",
    # Resolver
    "BackfillRequest",
    "BlockSource",
    "ParentResolver",
    # Retention
    "RetentionPolicy",
    "evict",
    # Configuration constants
    "DEFAULT_MAX_ITEMS",
    "EVICTION_INTERVAL",
    "MAX_BACKFILL_HOPS",
    "MAX_CONCURRENT_BACKFILLS",
    "REQUEST_TIMEOUT",
]

from .config import (
    DEFAULT_MAX_ITEMS,
    EVICTION_INTERVAL,
    MAX_BACKFILL_HOPS,
    MAX_CONCURRENT_BACKFILLS,
    REQUEST_TIMEOUT,
)
from .eviction import RetentionPolicy, evict
from .resolver import BackfillRequest, BlockSource, ParentResolver
from .store import InsertOutcome, ItemStore, ParentGap
