"""Read path: serves bars from the cache and queues refreshes on misses."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from barcache.core.data.providers.fallback import FallbackClient
from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.exceptions import (
    StaleOrMissingError,
    SymbolInactiveError,
    SymbolInvalidError,
    SymbolNotFoundError,
)
from barcache.core.logging import logger
from barcache.core.models.bars import BarSeries
from barcache.core.models.granularity import Granularity, resolve_granularity
from barcache.core.models.symbols import SymbolRecord, normalize_symbol
from barcache.core.monitoring import MetricsCollector, get_metrics_collector
from barcache.core.services.aggregation import aggregate_bars
from barcache.core.services.queue import CollectionQueue
from barcache.core.services.sessions import MarketSession
from barcache.core.services.staleness import RecentCollections, StalenessPolicy


class BarService:
    """Answers reads from the store without calling a vendor.

    Derived granularities are aggregated from their stored source on the fly.
    Empty or stale results enqueue the symbol for collection and raise
    :class:`StaleOrMissingError`; the caller retries after ``retry_after``.
    """

    def __init__(
        self,
        store: CacheStore,
        queue: CollectionQueue,
        client: FallbackClient,
        *,
        session: MarketSession | None = None,
        policy: StalenessPolicy | None = None,
        recent: RecentCollections | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] | None = None,
        retry_after: int = 15,
        drain_on_miss: bool = True,
    ) -> None:
        self._store = store
        self._queue = queue
        self._client = client
        self._session = session or MarketSession()
        self._policy = policy or StalenessPolicy()
        self._recent = recent or RecentCollections()
        self._metrics = metrics or get_metrics_collector()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._retry_after = retry_after
        self._drain_on_miss = drain_on_miss
        self._background: set[asyncio.Task] = set()

    async def get_bars(
        self,
        symbol: str,
        granularity: str,
        *,
        include_extended: bool = False,
        auto_register: bool = False,
    ) -> BarSeries:
        resolved = resolve_granularity(granularity)
        code = normalize_symbol(symbol)
        record = self._store.get_symbol(code)
        if record is None:
            if not auto_register:
                raise SymbolNotFoundError(code)
            await self.request_symbol(code)
            self._miss("new_symbol")
            raise StaleOrMissingError(
                f"Symbol {code} was registered; data is being collected",
                symbol=code,
                granularity=resolved.code,
                retry_after=self._retry_after,
            )
        if not record.is_active:
            raise SymbolInactiveError(code)

        now = self._clock()
        session_open = self._session.is_open(now)
        end = now
        if resolved.is_intraday and not session_open:
            end = self._session.last_close(now)
        start = end - timedelta(days=resolved.read_window_days)

        stored = self._store.read_bars(record.symbol_id, resolved.source, start, end)
        if resolved.is_intraday and not include_extended:
            stored = [bar for bar in stored if self._session.is_regular_hours(bar.ts)]
        if not stored:
            self._refresh(record, resolved.source)
            self._miss("missing")
            raise StaleOrMissingError(
                f"No {resolved.code} bars cached for {code}",
                symbol=code,
                granularity=resolved.code,
                retry_after=self._retry_after,
            )

        decision = self._policy.evaluate(
            resolved.code,
            stored[-1].ts,
            now,
            session_open=session_open,
            recently_collected_at=self._recent.last_collected(code),
        )
        if decision.stale:
            self._refresh(record, resolved.source)
            self._miss("stale")
            raise StaleOrMissingError(
                f"{resolved.code} bars for {code} are {decision.age_minutes:.0f} minutes old",
                symbol=code,
                granularity=resolved.code,
                retry_after=self._retry_after,
                details={"age_minutes": decision.age_minutes, "threshold_minutes": decision.threshold_minutes},
            )

        bars = aggregate_bars(stored, resolved.multiplier)
        return BarSeries(
            symbol=code,
            granularity=resolved.code,
            bars=tuple(bars),
            source_granularity=resolved.source.value,
            multiplier=resolved.multiplier,
            metadata={"age_minutes": round(decision.age_minutes, 2), "freshness": decision.reason},
        )

    def enqueue(self, symbol: str, granularity: Granularity | None = None) -> bool:
        """Queue an explicit refresh for a known symbol."""

        code = normalize_symbol(symbol)
        if self._store.get_symbol(code) is None:
            raise SymbolNotFoundError(code)
        return self._queue.add(code, granularity)

    async def request_symbol(self, symbol: str) -> SymbolRecord:
        """Register ``symbol`` for caching, validating it with the vendors first.

        Inactive symbols are reactivated without asking a vendor. A symbol that
        every vendor rejects raises :class:`SymbolInvalidError`.
        """

        code = normalize_symbol(symbol)
        existing = self._store.get_symbol(code)
        if existing is not None:
            if not existing.is_active:
                self._store.reactivate_symbol(code)
                self._queue.add(code)
                logger.info("symbol_reactivated", symbol=code)
            return self._store.get_symbol(code)

        if not await self._client.validate_symbol(code):
            logger.warning("symbol_rejected", symbol=code)
            raise SymbolInvalidError(code)
        record = self._store.insert_symbol(code)
        self._queue.add(code)
        logger.info("symbol_registered", symbol=code, symbol_id=record.symbol_id)
        return record

    async def revalidate_symbol(self, symbol: str) -> bool:
        """Deactivate ``symbol`` when every vendor now rejects it."""

        code = normalize_symbol(symbol)
        if self._store.get_symbol(code) is None:
            raise SymbolNotFoundError(code)
        if await self._client.validate_symbol(code):
            return True
        removed = self._store.deactivate_symbol(code)
        logger.warning("symbol_deactivated", symbol=code, bars_removed=removed)
        return False

    def stats(self) -> dict[str, Any]:
        summary = self._store.stats()
        summary["queue"] = {"depth": len(self._queue), "draining": self._queue.is_draining}
        summary["recent_runs"] = [
            {
                "job_type": run.job_type,
                "granularity": run.granularity,
                "status": run.status.value,
                "started_at": run.started_at,
                "bars_inserted": run.bars_inserted,
                "bars_updated": run.bars_updated,
                "error_message": run.error_message,
            }
            for run in self._store.recent_runs(10)
        ]
        return summary

    async def wait_background(self) -> None:
        """Await drains started by read misses."""

        if self._background:
            await asyncio.gather(*self._background)

    def _refresh(self, record: SymbolRecord, granularity: Granularity) -> None:
        self._queue.add(record.symbol, granularity)
        if not self._drain_on_miss:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._queue.drain())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _miss(self, reason: str) -> None:
        self._metrics.record_read_miss(reason)


__all__ = ["BarService"]
