"""
Reconciliation configuration constants.

Operational parameters for retention, backfill and request timeouts.
"""

from __future__ import annotations

from typing import Final

DEFAULT_MAX_ITEMS: Final[int] = 500
"""Default retention cap. Adjustable at runtime."""

EVICTION_INTERVAL: Final[float] = 30.0
"""Seconds between safety-net eviction passes."""

REQUEST_TIMEOUT: Final[float] = 10.0
"""Timeout for poll, point lookup and backfill requests in seconds."""

MAX_BACKFILL_HOPS: Final[int] = 1
"""How many missing-parent links one triggering event may fetch."""

MAX_CONCURRENT_BACKFILLS: Final[int] = 4
"""Backfill worker tasks draining the request queue."""
