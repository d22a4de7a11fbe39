"""Prometheus metrics for cachesync.

Provides counters for:
- Cache hits, misses, stale reads and consistency errors
- Cache operation errors and degraded (store unavailable) operations
- Events published, received and dead-lettered
- Handler retries

Usage:
    from cachesync.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_hits_total.labels(source="refresh_ahead").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, generate_latest, start_http_server

from cachesync.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> NoOpMetric:
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_stale_reads_total: Any = None
    cache_consistency_errors_total: Any = None
    cache_operation_errors_total: Any = None
    cache_degraded_operations_total: Any = None

    # Event metrics
    events_published_total: Any = None
    events_received_total: Any = None
    event_handler_retries_total: Any = None
    events_dead_lettered_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            noop = NoOpMetric()
            self.cache_hits_total = noop
            self.cache_misses_total = noop
            self.cache_stale_reads_total = noop
            self.cache_consistency_errors_total = noop
            self.cache_operation_errors_total = noop
            self.cache_degraded_operations_total = noop
            self.events_published_total = noop
            self.events_received_total = noop
            self.event_handler_retries_total = noop
            self.events_dead_lettered_total = noop
            self._initialized = True
            return

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "cachesync_cache_hits_total",
            "Cache hits",
            ["source"],
        )
        self.cache_misses_total = Counter(
            "cachesync_cache_misses_total",
            "Cache misses",
            ["source"],
        )
        self.cache_stale_reads_total = Counter(
            "cachesync_cache_stale_reads_total",
            "Stale cache entries served while a refresh runs",
        )
        self.cache_consistency_errors_total = Counter(
            "cachesync_cache_consistency_errors_total",
            "Consistency check failures",
        )
        self.cache_operation_errors_total = Counter(
            "cachesync_cache_operation_errors_total",
            "Cache operations that failed against a connected store",
            ["operation"],
        )
        self.cache_degraded_operations_total = Counter(
            "cachesync_cache_degraded_operations_total",
            "Cache operations skipped because the store was unavailable",
            ["operation"],
        )

        self.events_published_total = Counter(
            "cachesync_events_published_total",
            "Events published",
            ["channel", "outcome"],
        )
        self.events_received_total = Counter(
            "cachesync_events_received_total",
            "Events received by the subscriber",
            ["channel", "outcome"],
        )
        self.event_handler_retries_total = Counter(
            "cachesync_event_handler_retries_total",
            "Event handler retry attempts",
            ["handler"],
        )
        self.events_dead_lettered_total = Counter(
            "cachesync_events_dead_lettered_total",
            "Events forwarded to the dead-letter channel",
            ["event_type"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)

    def serve(self, port: int, addr: str = "0.0.0.0") -> bool:
        """Expose the registry over HTTP for Prometheus to scrape.

        Returns False when metrics are disabled.
        """
        if self._registry is None:
            logger.warning("Metrics are disabled, not starting metrics server")
            return False
        start_http_server(port, addr=addr, registry=self._registry)
        logger.info(f"Metrics server listening on {addr}:{port}")
        return True


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_cache_hit(source: str = "store") -> None:
    get_metrics().cache_hits_total.labels(source=source).inc()


def record_cache_miss(source: str = "store") -> None:
    get_metrics().cache_misses_total.labels(source=source).inc()


def record_stale_read() -> None:
    get_metrics().cache_stale_reads_total.inc()


def record_consistency_error() -> None:
    get_metrics().cache_consistency_errors_total.inc()


def record_cache_operation_error(operation: str) -> None:
    get_metrics().cache_operation_errors_total.labels(operation=operation).inc()


def record_cache_degraded(operation: str) -> None:
    get_metrics().cache_degraded_operations_total.labels(operation=operation).inc()


def record_event_published(channel: str, outcome: str = "success") -> None:
    """Record an event publication.

    Args:
        channel: Channel the event was published to
        outcome: "success" or "failure"
    """
    get_metrics().events_published_total.labels(channel=channel, outcome=outcome).inc()


def record_event_received(channel: str, outcome: str) -> None:
    """Record an inbound message.

    Args:
        channel: Channel the message arrived on
        outcome: "dispatched", "malformed", "unhandled" or "handler_error"
    """
    get_metrics().events_received_total.labels(channel=channel, outcome=outcome).inc()


def record_handler_retry(handler: str) -> None:
    get_metrics().event_handler_retries_total.labels(handler=handler).inc()


def record_dead_lettered(event_type: str) -> None:
    get_metrics().events_dead_lettered_total.labels(event_type=event_type).inc()
