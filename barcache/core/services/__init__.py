"""Core services: ingestion, gap reconciliation, scheduling and the read path."""

from barcache.core.services.aggregation import aggregate_bars
from barcache.core.services.bars import BarService
from barcache.core.services.batch import BatchError, BatchProcessor, BatchSummary, split_into_batches
from barcache.core.services.gap_reconciler import GapReconciler, GapReport, GapRunReport
from barcache.core.services.ingestion import IngestionOutcome, IngestionService
from barcache.core.services.queue import CollectionQueue, DrainReport
from barcache.core.services.scheduler import IngestionScheduler, cron_trigger
from barcache.core.services.sessions import MarketSession
from barcache.core.services.staleness import RecentCollections, StalenessDecision, StalenessPolicy

__all__ = [
    "BarService",
    "BatchError",
    "BatchProcessor",
    "BatchSummary",
    "CollectionQueue",
    "DrainReport",
    "GapReconciler",
    "GapReport",
    "GapRunReport",
    "IngestionOutcome",
    "IngestionScheduler",
    "IngestionService",
    "MarketSession",
    "RecentCollections",
    "StalenessDecision",
    "StalenessPolicy",
    "aggregate_bars",
    "cron_trigger",
    "split_into_batches",
]
