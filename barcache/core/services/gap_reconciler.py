"""Detects and backfills bar-count shortfalls per (symbol, granularity)."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from random import Random

from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.logging import logger
from barcache.core.models.granularity import GAP_PRIORITY, Granularity
from barcache.core.models.ingestion import JobType
from barcache.core.models.symbols import SymbolRecord
from barcache.core.services.ingestion import IngestionOutcome, IngestionService


@dataclass(frozen=True)
class GapReport:
    """A (symbol, granularity) pair holding fewer bars than expected."""

    symbol_id: int
    symbol: str
    granularity: Granularity
    stored: int
    expected: int

    @property
    def shortfall(self) -> int:
        return self.expected - self.stored


@dataclass
class GapRunReport:
    """Summary of one reconciliation pass."""

    mode: str
    checked: list[Granularity] = field(default_factory=list)
    gaps: list[GapReport] = field(default_factory=list)
    outcomes: list[IngestionOutcome] = field(default_factory=list)
    rate_limited: bool = False
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class GapReconciler:
    """Compares stored counts with each granularity's expected-bar heuristic.

    The systematic pass walks every active symbol for each granularity in
    priority order; the spot check walks one randomly picked symbol. Both
    step aside while the collection queue is draining and stop at the first
    rate limit, leaving the rest to the next firing.
    """

    def __init__(
        self,
        store: CacheStore,
        ingestion: IngestionService,
        *,
        queue_busy: Callable[[], bool] = lambda: False,
        rng: Random | None = None,
        priority: Sequence[Granularity] = GAP_PRIORITY,
    ) -> None:
        self._store = store
        self._ingestion = ingestion
        self._queue_busy = queue_busy
        self._rng = rng or Random()
        self._priority = tuple(priority)

    def find_gaps(self, granularity: Granularity, *, threshold: int | None = None) -> list[GapReport]:
        expected = threshold if threshold is not None else granularity.expected_bars
        return [
            GapReport(count.symbol_id, count.symbol, granularity, count.count, expected)
            for count in self._store.bar_counts(granularity)
            if count.count < expected
        ]

    async def run_systematic(self) -> GapRunReport:
        report = GapRunReport(mode="systematic")
        if self._queue_busy():
            report.skipped_reason = "queue_draining"
            logger.info("gap_run_skipped", mode=report.mode, reason=report.skipped_reason)
            return report

        for granularity in self._priority:
            if self._queue_busy():
                report.skipped_reason = "queue_draining"
                break
            report.checked.append(granularity)
            gaps = self.find_gaps(granularity)
            if not gaps:
                continue
            report.gaps.extend(gaps)
            logger.info("gaps_found", granularity=granularity.value, symbols=len(gaps))
            outcome = await self._backfill(granularity, gaps, JobType.GAP_FILL)
            report.outcomes.append(outcome)
            if outcome.rate_limited:
                report.rate_limited = True
                break
        return report

    async def run_spot_check(self) -> GapRunReport:
        report = GapRunReport(mode="spot_check")
        if self._queue_busy():
            report.skipped_reason = "queue_draining"
            logger.info("gap_run_skipped", mode=report.mode, reason=report.skipped_reason)
            return report
        symbols = self._store.active_symbols()
        if not symbols:
            report.skipped_reason = "no_symbols"
            return report

        pick = self._rng.choice(symbols)
        logger.info("spot_check_started", symbol=pick.symbol)
        for granularity in self._priority:
            if self._queue_busy():
                report.skipped_reason = "queue_draining"
                break
            report.checked.append(granularity)
            stored = self._store.count_bars(pick.symbol_id, granularity)
            if stored >= granularity.expected_bars:
                continue
            gap = GapReport(pick.symbol_id, pick.symbol, granularity, stored, granularity.expected_bars)
            report.gaps.append(gap)
            outcome = await self._backfill(granularity, [gap], JobType.SPOT_CHECK)
            report.outcomes.append(outcome)
            if outcome.rate_limited:
                report.rate_limited = True
                break
        return report

    async def run_daily_refill(self, min_bars: int = 100) -> GapRunReport:
        """Refill daily history for symbols holding fewer than ``min_bars`` daily bars."""

        report = GapRunReport(mode="daily_refill", checked=[Granularity.DAY_1])
        if self._queue_busy():
            report.skipped_reason = "queue_draining"
            return report
        gaps = self.find_gaps(Granularity.DAY_1, threshold=min_bars)
        report.gaps.extend(gaps)
        if gaps:
            outcome = await self._backfill(Granularity.DAY_1, gaps, JobType.REFILL)
            report.outcomes.append(outcome)
            report.rate_limited = outcome.rate_limited
        return report

    async def _backfill(self, granularity: Granularity, gaps: Sequence[GapReport], job_type: JobType) -> IngestionOutcome:
        records = [SymbolRecord(gap.symbol_id, gap.symbol) for gap in gaps]
        return await self._ingestion.collect(granularity, records, job_type=job_type.value)


__all__ = ["GapReconciler", "GapReport", "GapRunReport"]
