"""Observability for cachesync: structured logging and Prometheus metrics."""

from cachesync.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
)
from cachesync.observability.metrics import MetricsRegistry, get_metrics

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "LogContext",
    "configure_logging",
    "MetricsRegistry",
    "get_metrics",
]
