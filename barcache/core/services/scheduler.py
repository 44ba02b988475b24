"""Cron-driven ingestion with per-granularity mutual exclusion."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from barcache.core.config.settings import IngestionConfig
from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.exceptions import ConfigurationError
from barcache.core.logging import logger
from barcache.core.models.granularity import GRANULARITY_SPECS, Granularity
from barcache.core.models.ingestion import JobType
from barcache.core.services.gap_reconciler import GapReconciler, GapRunReport
from barcache.core.services.ingestion import IngestionOutcome, IngestionService
from barcache.core.services.queue import CollectionQueue, DrainReport
from barcache.core.services.sessions import MarketSession

CRON_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week")


def cron_trigger(expression: str, timezone: ZoneInfo) -> CronTrigger:
    """Build a trigger from a six-field ``second minute hour day month day_of_week`` expression."""

    parts = expression.split()
    if len(parts) != len(CRON_FIELDS):
        raise ConfigurationError(f"Cron expression needs {len(CRON_FIELDS)} fields: '{expression}'")
    return CronTrigger(timezone=timezone, **dict(zip(CRON_FIELDS, parts)))


class IngestionScheduler:
    """Owns the per-granularity locks and the cron jobs that drive ingestion.

    An overlapping firing of a granularity that is still running is skipped
    and logged, never queued. Every job catches its own failures so one
    granularity cannot take down another or the process.
    """

    def __init__(
        self,
        store: CacheStore,
        ingestion: IngestionService,
        queue: CollectionQueue,
        gaps: GapReconciler,
        *,
        session: MarketSession | None = None,
        config: IngestionConfig | None = None,
        max_bars_per_series: int = 600,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._ingestion = ingestion
        self._queue = queue
        self._gaps = gaps
        self._config = config or IngestionConfig()
        self._session = session or MarketSession(timezone=self._config.timezone)
        self._max_bars = max_bars_per_series
        self._clock = clock or (lambda: datetime.now(UTC))
        self._locks: dict[Granularity, asyncio.Lock] = {g: asyncio.Lock() for g in Granularity}
        self._scheduler: AsyncIOScheduler | None = None

    def is_running(self, granularity: Granularity) -> bool:
        return self._locks[granularity].locked()

    async def run_granularity(
        self,
        granularity: Granularity,
        job_type: JobType = JobType.SCHEDULED,
    ) -> IngestionOutcome | None:
        """Ingest every active symbol for ``granularity``; None when the run was skipped."""

        lock = self._locks[granularity]
        if lock.locked():
            logger.info("ingestion_skipped", granularity=granularity.value, reason="already_running")
            return None
        if granularity.is_intraday and not self._session.is_open(self._clock()):
            logger.debug("ingestion_skipped", granularity=granularity.value, reason="session_closed")
            return None

        async with lock:
            symbols = self._store.active_symbols()
            if not symbols:
                logger.debug("ingestion_skipped", granularity=granularity.value, reason="no_symbols")
                return None
            try:
                return await self._ingestion.collect(granularity, symbols, job_type=job_type.value)
            except Exception as exc:
                logger.exception("ingestion_job_failed", granularity=granularity.value, job_type=job_type.value, error=str(exc))
                return None

    async def drain_queue(self) -> DrainReport | None:
        return await self._guarded("queue_drain", self._queue.drain)

    async def run_spot_check(self) -> GapRunReport | None:
        return await self._guarded("spot_check", self._gaps.run_spot_check)

    async def run_systematic(self) -> GapRunReport | None:
        return await self._guarded("gap_reconcile", self._gaps.run_systematic)

    async def run_refill(self) -> GapRunReport | None:
        return await self._guarded(
            "daily_refill", lambda: self._gaps.run_daily_refill(self._config.refill_min_daily_bars)
        )

    async def run_eviction(self) -> int | None:
        async def _evict() -> int:
            return self._store.evict_oldest(self._max_bars)

        return await self._guarded("eviction", _evict)

    async def _guarded(self, job: str, action: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await action()
        except Exception as exc:
            logger.exception("scheduled_job_failed", job=job, error=str(exc))
            return None

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> AsyncIOScheduler:
        """Register every cron job on an AsyncIOScheduler bound to the running loop."""

        if self._scheduler is not None:
            return self._scheduler
        zone = self._session.zone
        scheduler = AsyncIOScheduler(timezone=zone)

        for granularity, spec in GRANULARITY_SPECS.items():
            scheduler.add_job(
                self.run_granularity,
                cron_trigger(spec.primary_cron, zone),
                args=[granularity, JobType.SCHEDULED],
                id=f"ingest:{granularity.value}",
                max_instances=2,
                coalesce=True,
            )
            if spec.retry_cron:
                scheduler.add_job(
                    self.run_granularity,
                    cron_trigger(spec.retry_cron, zone),
                    args=[granularity, JobType.RETRY],
                    id=f"retry:{granularity.value}",
                    max_instances=2,
                    coalesce=True,
                )

        scheduler.add_job(self.drain_queue, cron_trigger("0 * * * * *", zone), id="queue_drain", coalesce=True)
        scheduler.add_job(
            self.run_spot_check,
            cron_trigger(f"0 */{self._config.spot_check_minutes} * * * *", zone),
            id="spot_check",
            coalesce=True,
        )
        scheduler.add_job(
            self.run_refill,
            cron_trigger(f"0 0 */{self._config.refill_hours} * * *", zone),
            id="daily_refill",
            coalesce=True,
        )
        scheduler.add_job(
            self.run_eviction,
            cron_trigger(f"0 0 {self._config.eviction_hour} * * *", zone),
            id="eviction",
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("scheduler_started", jobs=len(scheduler.get_jobs()), timezone=self._session.timezone)
        return scheduler

    def jobs(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")


__all__ = ["IngestionScheduler", "cron_trigger"]
