"""Prometheus metrics for the sync and aggregation pipeline.

Histograms time whole operations through ``measure_duration``; the counter and
gauge are updated from inside the sync orchestrator.
"""

import functools

from prometheus_client import Counter, Gauge, Histogram

sync_duration_seconds = Histogram(
    "sync_duration_seconds", "Duration of a full invoice sync run"
)
snapshot_duration_seconds = Histogram(
    "snapshot_duration_seconds", "Duration of monthly snapshot creation"
)
aggregation_duration_seconds = Histogram(
    "aggregation_duration_seconds", "Duration of breakdown aggregation"
)
api_fetch_failures_total = Counter(
    "api_fetch_failures_total",
    "Invoicing API fetches that failed and were skipped",
    ["stage"],
)
invoices_synced = Gauge(
    "invoices_synced", "Invoices processed by the most recent successful sync"
)


def measure_duration(metric):
    """Decorator recording a function's execution time in the given Histogram.

    Args:
        metric (Histogram): Prometheus Histogram to observe into.

    Returns:
        Callable: Decorator preserving the wrapped function's metadata.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with metric.time():
                return func(*args, **kwargs)

        return wrapper

    return decorator
