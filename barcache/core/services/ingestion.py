"""Audited ingestion of one granularity for a set of symbols."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from barcache.core.data.providers.fallback import FallbackClient
from barcache.core.data.storage.cache_store import CacheStore, UpsertResult
from barcache.core.exceptions import DataValidationError, RateLimitError
from barcache.core.logging import log_context, logger
from barcache.core.models.granularity import Granularity
from barcache.core.models.ingestion import IngestionRun, IngestionStatus
from barcache.core.models.symbols import SymbolRecord
from barcache.core.monitoring import MetricsCollector, get_metrics_collector
from barcache.core.services.batch import BatchProcessor, BatchSummary
from barcache.core.services.staleness import RecentCollections


@dataclass(frozen=True)
class IngestionOutcome:
    run: IngestionRun
    batches: BatchSummary[UpsertResult]
    rate_limited: bool = False

    @property
    def status(self) -> IngestionStatus:
        return self.run.status


class IngestionService:
    """Fetches through the fallback client batch by batch and upserts the result.

    Scheduled runs, on-demand drains and gap backfills all go through
    :meth:`collect`, so every write path shares the same audit trail. A rate
    limit aborts the remaining batches of the run.
    """

    def __init__(
        self,
        store: CacheStore,
        client: FallbackClient,
        batch_processor: BatchProcessor,
        *,
        recent: RecentCollections | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._batches = batch_processor
        self._recent = recent or RecentCollections()
        self._metrics = metrics or get_metrics_collector()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def collect(
        self,
        granularity: Granularity,
        symbols: Sequence[SymbolRecord],
        *,
        job_type: str,
        lookback_days: int | None = None,
    ) -> IngestionOutcome:
        run = self._store.start_run(job_type, granularity.value, len(symbols))
        with log_context(granularity=granularity.value, job_type=job_type, run_id=run.run_id):
            if not symbols:
                finished = self._store.finish_run(run, IngestionStatus.SKIPPED, error_message="no symbols")
                self._metrics.record_run(job_type, granularity.value, finished.status.value)
                return IngestionOutcome(finished, BatchSummary())

            end = self._clock()
            start = end - timedelta(days=lookback_days or granularity.lookback_days)
            by_symbol = {record.symbol: record for record in symbols}
            processed: set[str] = set()
            logger.info("ingestion_started", symbols=len(symbols), start=start, end=end)

            async def _collect_batch(batch: list[SymbolRecord], index: int) -> UpsertResult:
                names = [record.symbol for record in batch]
                fetched = await self._client.fetch_bars(names, granularity, start, end)
                unexpected = sorted(set(fetched.bars) - set(names))
                if unexpected:
                    raise DataValidationError(
                        f"{fetched.source} returned unrequested symbols: {', '.join(unexpected)}",
                        validation_errors={"unexpected_keys": unexpected},
                    )
                total = UpsertResult()
                for symbol, bars in fetched.bars.items():
                    upserted = await self._store.upsert_bars(by_symbol[symbol].symbol_id, granularity, bars, fetched.source)
                    total += upserted
                    processed.add(symbol)
                    self._recent.mark(symbol)
                logger.info(
                    "ingestion_batch_stored",
                    batch_index=index,
                    vendor=fetched.source,
                    symbols=len(fetched.bars),
                    inserted=total.inserted,
                    updated=total.updated,
                )
                return total

            summary = await self._batches.process(list(symbols), _collect_batch, abort_on=(RateLimitError,))

            totals = sum(summary.results, UpsertResult())
            error_message = "; ".join(f"batch {e.batch_index}: {e.error}" for e in summary.errors[:5]) or None
            failed = summary.failed_batches > 0 and summary.successful_batches == 0
            status = IngestionStatus.FAILED if failed else IngestionStatus.COMPLETED
            finished = self._store.finish_run(
                run,
                status,
                symbols_processed=len(processed),
                upserted=totals,
                error_message=error_message,
            )
            self._metrics.record_run(job_type, granularity.value, status.value)
            self._metrics.record_upsert(granularity.value, totals.inserted, totals.updated)
            logger.info(
                "ingestion_finished",
                status=status.value,
                symbols_processed=len(processed),
                inserted=totals.inserted,
                updated=totals.updated,
                failed_batches=summary.failed_batches,
                rate_limited=summary.aborted,
            )
            return IngestionOutcome(finished, summary, rate_limited=summary.aborted)


__all__ = ["IngestionOutcome", "IngestionService"]
