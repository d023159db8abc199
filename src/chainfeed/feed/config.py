"""Runtime configuration of one feed session."""

from __future__ import annotations

from dataclasses import dataclass

from chainfeed.reconcile.config import (
    DEFAULT_MAX_ITEMS,
    EVICTION_INTERVAL,
    MAX_BACKFILL_HOPS,
    MAX_CONCURRENT_BACKFILLS,
    REQUEST_TIMEOUT,
)


@dataclass(frozen=True, slots=True)
class FeedConfig:
    """Tunables of the reconciliation core."""

    max_items: int = DEFAULT_MAX_ITEMS
    """Initial retention cap. Adjustable at runtime."""

    request_timeout: float = REQUEST_TIMEOUT
    """Timeout in seconds for polls, lookups and backfills."""

    eviction_interval: float = EVICTION_INTERVAL
    """Seconds between safety-net eviction passes."""

    max_backfill_hops: int = MAX_BACKFILL_HOPS
    """Missing links fetched per triggering event."""

    backfill_concurrency: int = MAX_CONCURRENT_BACKFILLS
    """Backfill worker tasks."""
