"""Prometheus metrics for the bar cache."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import DefaultDict

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


@dataclass
class _VendorStats:
    """Running success/failure counts for one vendor."""

    total: int = 0
    failures: int = 0


class MetricsCollector:
    """Owns a private registry with vendor, ingestion and read-path metrics."""

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.vendor_latency_seconds = Histogram(
            "barcache_vendor_latency_seconds",
            "Latency distribution for upstream vendor requests.",
            ("vendor",),
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
            registry=self.registry,
        )
        self.vendor_requests_total = Counter(
            "barcache_vendor_requests_total",
            "Total upstream vendor requests.",
            ("vendor",),
            registry=self.registry,
        )
        self.vendor_failures_total = Counter(
            "barcache_vendor_failures_total",
            "Failed upstream vendor requests.",
            ("vendor",),
            registry=self.registry,
        )
        self.vendor_error_rate = Gauge(
            "barcache_vendor_error_rate",
            "Error rate per vendor since process start (0-1 range).",
            ("vendor",),
            registry=self.registry,
        )
        self.ingestion_runs_total = Counter(
            "barcache_ingestion_runs_total",
            "Ingestion runs grouped by job type, granularity and terminal status.",
            ("job_type", "granularity", "status"),
            registry=self.registry,
        )
        self.bars_upserted_total = Counter(
            "barcache_bars_upserted_total",
            "Bars written to the cache grouped by outcome.",
            ("granularity", "outcome"),
            registry=self.registry,
        )
        self.queue_depth = Gauge(
            "barcache_collection_queue_depth",
            "Pending on-demand collection requests.",
            registry=self.registry,
        )
        self.read_misses_total = Counter(
            "barcache_read_misses_total",
            "Reads answered with stale-or-missing, grouped by reason.",
            ("reason",),
            registry=self.registry,
        )
        self._vendor_stats: DefaultDict[str, _VendorStats] = defaultdict(_VendorStats)

    def observe_vendor_call(self, vendor: str, latency_seconds: float, *, success: bool = True) -> None:
        self.vendor_latency_seconds.labels(vendor=vendor).observe(latency_seconds)
        stats = self._vendor_stats[vendor]
        stats.total += 1
        self.vendor_requests_total.labels(vendor=vendor).inc()
        if not success:
            stats.failures += 1
            self.vendor_failures_total.labels(vendor=vendor).inc()
        self.vendor_error_rate.labels(vendor=vendor).set(stats.failures / stats.total)

    def record_run(self, job_type: str, granularity: str | None, status: str) -> None:
        self.ingestion_runs_total.labels(job_type=job_type, granularity=granularity or "all", status=status).inc()

    def record_upsert(self, granularity: str, inserted: int, updated: int) -> None:
        if inserted:
            self.bars_upserted_total.labels(granularity=granularity, outcome="inserted").inc(inserted)
        if updated:
            self.bars_upserted_total.labels(granularity=granularity, outcome="updated").inc(updated)

    def set_queue_depth(self, depth: int) -> None:
        self.queue_depth.set(depth)

    def record_read_miss(self, reason: str) -> None:
        label = reason if reason in _ALLOWED_MISS_REASONS else "__other__"
        self.read_misses_total.labels(reason=label).inc()

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)


_ALLOWED_MISS_REASONS = {"missing", "stale", "new_symbol"}

_DEFAULT_COLLECTOR: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Return the process-wide collector, creating it on first use."""

    global _DEFAULT_COLLECTOR
    if _DEFAULT_COLLECTOR is None:
        _DEFAULT_COLLECTOR = MetricsCollector()
    return _DEFAULT_COLLECTOR


def configure_metrics_collector(collector: MetricsCollector | None) -> None:
    """Override the process-wide collector for application wiring or tests."""

    global _DEFAULT_COLLECTOR
    _DEFAULT_COLLECTOR = collector


__all__ = ["MetricsCollector", "configure_metrics_collector", "get_metrics_collector"]
