"""Domain models."""

from barcache.core.models.bars import Bar, BarSeries
from barcache.core.models.granularity import (
    DERIVED_GRANULARITIES,
    GAP_PRIORITY,
    GRANULARITY_SPECS,
    Granularity,
    GranularitySpec,
    ResolvedGranularity,
    parse_granularity,
    resolve_granularity,
)
from barcache.core.models.ingestion import IngestionRun, IngestionStatus, JobType
from barcache.core.models.symbols import CollectionRequest, SymbolRecord, normalize_symbol

__all__ = [
    "DERIVED_GRANULARITIES",
    "GAP_PRIORITY",
    "GRANULARITY_SPECS",
    "Bar",
    "BarSeries",
    "CollectionRequest",
    "Granularity",
    "GranularitySpec",
    "IngestionRun",
    "IngestionStatus",
    "JobType",
    "ResolvedGranularity",
    "SymbolRecord",
    "normalize_symbol",
    "parse_granularity",
    "resolve_granularity",
]
