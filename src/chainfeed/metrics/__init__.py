"""
Metrics module for observability.

Provides counters, gauges, and histograms for tracking feed behavior.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    backfill_failures,
    backfill_requests,
    backfills_in_flight,
    duplicates,
    generate_metrics,
    inclusion_updates,
    items_evicted,
    items_inserted,
    items_stored,
    max_height,
    missing_parents,
    poll_failures,
    push_messages,
    rpc_request_time,
    tip_height,
)

__all__ = [
    "REGISTRY",
    "backfill_failures",
    "backfill_requests",
    "backfills_in_flight",
    "duplicates",
    "generate_metrics",
    "inclusion_updates",
    "items_evicted",
    "items_inserted",
    "items_stored",
    "max_height",
    "missing_parents",
    "poll_failures",
    "push_messages",
    "rpc_request_time",
    "tip_height",
]
