"""Prometheus metrics for recordstore."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all recordstore metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Transaction metrics
        self.transactions_total = Counter(
            "recordstore_transactions_total",
            "Total number of transactions",
            ["store", "mode", "status"],  # status: commit, abort
            registry=self._registry,
        )

        self.transactions_active = Gauge(
            "recordstore_transactions_active",
            "Number of transactions awaiting their terminal event",
            registry=self._registry,
        )

        self.transaction_latency_seconds = Histogram(
            "recordstore_transaction_latency_seconds",
            "Time from transaction open to commit or abort",
            ["mode"],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
            registry=self._registry,
        )

        # Schema metrics
        self.upgrades_total = Counter(
            "recordstore_upgrades_total",
            "Total number of version upgrades",
            ["status"],  # success, error
            registry=self._registry,
        )

        self.schema_version = Gauge(
            "recordstore_schema_version",
            "Version of the live connection",
            ["database"],
            registry=self._registry,
        )

        # Batch retrieval metrics
        self.batch_keys_requested_total = Counter(
            "recordstore_batch_keys_requested_total",
            "Keys requested through batch gets",
            ["store"],
            registry=self._registry,
        )

        self.batch_keys_found_total = Counter(
            "recordstore_batch_keys_found_total",
            "Requested keys found during batch gets",
            ["store"],
            registry=self._registry,
        )

        self.cursor_steps_total = Counter(
            "recordstore_cursor_steps_total",
            "Cursor stops visited by batch gets",
            ["store"],
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
