"""Deduplicating on-demand collection queue with a single-flight drain."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.exceptions import BarCacheError
from barcache.core.logging import logger
from barcache.core.models.granularity import Granularity
from barcache.core.models.ingestion import JobType
from barcache.core.models.symbols import CollectionRequest
from barcache.core.monitoring import MetricsCollector, get_metrics_collector
from barcache.core.services.ingestion import IngestionOutcome, IngestionService


@dataclass
class DrainReport:
    requests: int = 0
    outcomes: list[IngestionOutcome] = field(default_factory=list)
    unknown_symbols: list[str] = field(default_factory=list)
    requeued: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class CollectionQueue:
    """Set of pending requests drained by at most one task at a time.

    A drain works on a snapshot: requests added while it runs stay queued for
    the next drain.
    """

    def __init__(
        self,
        store: CacheStore,
        ingestion: IngestionService,
        *,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._store = store
        self._ingestion = ingestion
        self._metrics = metrics or get_metrics_collector()
        self._pending: dict[str, CollectionRequest] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    @property
    def is_draining(self) -> bool:
        return self._lock.locked()

    def keys(self) -> list[str]:
        return list(self._pending)

    def add(self, symbol: str, granularity: Granularity | None = None) -> bool:
        """Queue a request; returns False when it was already pending."""

        request = CollectionRequest(symbol, granularity)
        if request.key in self._pending:
            return False
        self._pending[request.key] = request
        self._metrics.set_queue_depth(len(self._pending))
        logger.debug("collection_queued", request=request.key, depth=len(self._pending))
        return True

    def snapshot_and_clear(self) -> list[CollectionRequest]:
        items = list(self._pending.values())
        self._pending.clear()
        self._metrics.set_queue_depth(0)
        return items

    async def drain(self) -> DrainReport | None:
        """Collect everything queued so far; returns None when skipped."""

        if self._lock.locked():
            logger.info("queue_drain_skipped", reason="already_draining", depth=len(self._pending))
            return None
        if not self._pending:
            return None

        async with self._lock:
            requests = self.snapshot_and_clear()
            report = DrainReport(requests=len(requests))
            groups = self._group(requests)

            symbols = sorted({symbol for names in groups.values() for symbol in names})
            records = self._store.resolve_symbols(symbols)
            report.unknown_symbols = [symbol for symbol in symbols if symbol not in records]
            for symbol in report.unknown_symbols:
                logger.warning("queued_symbol_unknown", symbol=symbol)

            ordered = list(groups.items())
            for position, (granularity, names) in enumerate(ordered):
                batch = [records[name] for name in names if name in records]
                if not batch:
                    continue
                try:
                    outcome = await self._ingestion.collect(granularity, batch, job_type=JobType.ON_DEMAND.value)
                except BarCacheError as exc:
                    report.errors[granularity.value] = exc.message
                    logger.error("queue_granularity_failed", granularity=granularity.value, error=exc.message)
                    continue
                report.outcomes.append(outcome)
                if outcome.rate_limited:
                    report.requeued = self._requeue(ordered[position + 1 :])
                    logger.warning("queue_drain_rate_limited", requeued=len(report.requeued))
                    break

            logger.info(
                "queue_drained",
                requests=report.requests,
                granularities=len(report.outcomes),
                unknown=len(report.unknown_symbols),
            )
            return report

    @staticmethod
    def _group(requests: list[CollectionRequest]) -> dict[Granularity, list[str]]:
        groups: dict[Granularity, list[str]] = {}
        for request in requests:
            for symbol, granularity in request.expand():
                names = groups.setdefault(granularity, [])
                if symbol not in names:
                    names.append(symbol)
        return groups

    def _requeue(self, remaining: list[tuple[Granularity, list[str]]]) -> list[str]:
        keys = []
        for granularity, names in remaining:
            for name in names:
                self.add(name, granularity)
                keys.append(f"{name}:{granularity.value}")
        return keys


__all__ = ["CollectionQueue", "DrainReport"]
