"""
Prometheus Metrics

Defines and exports metrics for the reconciliation service.
"""

from contextlib import contextmanager
import time
from typing import Iterator

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

logger = structlog.get_logger()

# Singleton metrics instance
_metrics: "Metrics | None" = None

IDENTIFY_OUTCOMES = (
    "created_primary",
    "created_secondary",
    "merged",
    "unchanged",
    "invalid",
    "error",
)


class Metrics:
    """
    Prometheus metrics for identity reconciliation.

    Tracks:
    - Identify requests by outcome
    - Identify latency
    - Primaries demoted by cluster merges
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.identify_requests_total = Counter(
            "reconciliation_identify_requests_total",
            "Total identify requests",
            ["outcome"],
            registry=registry,
        )

        self.identify_duration_seconds = Histogram(
            "reconciliation_identify_duration_seconds",
            "Identify duration in seconds",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
            registry=registry,
        )

        self.contacts_demoted_total = Counter(
            "reconciliation_contacts_demoted_total",
            "Primary contacts demoted to secondary by cluster merges",
            registry=registry,
        )

    def record_identify(self, outcome: str) -> None:
        if outcome not in IDENTIFY_OUTCOMES:
            logger.warning("Unknown identify outcome", outcome=outcome)
            return
        self.identify_requests_total.labels(outcome=outcome).inc()

    def record_demotions(self, count: int) -> None:
        if count > 0:
            self.contacts_demoted_total.inc(count)

    @contextmanager
    def time_identify(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.identify_duration_seconds.observe(time.perf_counter() - start)


def get_metrics() -> Metrics:
    """Get or create the process-wide metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
