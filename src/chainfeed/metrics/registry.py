"""
Metric registry using prometheus_client.

Provides pre-defined metrics for the feed reconciliation engine.
Exposes metrics in Prometheus text format via the /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Dedicated registry so default Python process metrics stay out.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

items_stored = Gauge(
    "chainfeed_items_stored",
    "Items currently held by the store",
    registry=REGISTRY,
)

max_height = Gauge(
    "chainfeed_max_height",
    "Highest block height seen this session",
    registry=REGISTRY,
)

tip_height = Gauge(
    "chainfeed_tip_height",
    "Height of the latest polled block",
    registry=REGISTRY,
)

items_inserted = Counter(
    "chainfeed_items_inserted_total",
    "Items inserted into the store",
    ["item_type"],
    registry=REGISTRY,
)

duplicates = Counter(
    "chainfeed_duplicates_total",
    "Candidates absorbed as duplicates",
    registry=REGISTRY,
)

inclusion_updates = Counter(
    "chainfeed_inclusion_updates_total",
    "Uncles and workshares that gained an including block",
    registry=REGISTRY,
)

items_evicted = Counter(
    "chainfeed_items_evicted_total",
    "Items dropped by the retention policy",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Backfill
# -----------------------------------------------------------------------------

missing_parents = Gauge(
    "chainfeed_missing_parents",
    "Hashes recorded in the missing-parent ledger",
    registry=REGISTRY,
)

backfills_in_flight = Gauge(
    "chainfeed_backfills_in_flight",
    "Parent fetches currently outstanding",
    registry=REGISTRY,
)

backfill_requests = Counter(
    "chainfeed_backfill_requests_total",
    "Parent fetches started",
    registry=REGISTRY,
)

backfill_failures = Counter(
    "chainfeed_backfill_failures_total",
    "Parent fetches that failed or timed out",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Event Sources
# -----------------------------------------------------------------------------

poll_failures = Counter(
    "chainfeed_poll_failures_total",
    "Latest-block polls that failed or returned malformed data",
    registry=REGISTRY,
)

push_messages = Counter(
    "chainfeed_push_messages_total",
    "Workshare notifications received over the subscription",
    registry=REGISTRY,
)

rpc_request_time = Histogram(
    "chainfeed_rpc_request_seconds",
    "JSON-RPC request duration",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
