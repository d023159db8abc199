"""Tests for the metric registry."""

from __future__ import annotations

from chainfeed import metrics


class TestGenerateMetrics:
    """Tests for the Prometheus exposition."""

    def test_exposes_feed_metrics(self) -> None:
        """Every feed metric appears in the text output."""
        text = metrics.generate_metrics().decode()

        for name in (
            "chainfeed_items_stored",
            "chainfeed_max_height",
            "chainfeed_tip_height",
            "chainfeed_missing_parents",
            "chainfeed_backfills_in_flight",
            "chainfeed_poll_failures_total",
            "chainfeed_rpc_request_seconds",
        ):
            assert name in text

    def test_gauges_reflect_updates(self) -> None:
        """Set values are visible through the registry."""
        metrics.tip_height.set(42)

        assert metrics.REGISTRY.get_sample_value("chainfeed_tip_height") == 42.0

    def test_default_process_metrics_excluded(self) -> None:
        """The dedicated registry carries only feed metrics."""
        assert "process_cpu_seconds_total" not in metrics.generate_metrics().decode()
