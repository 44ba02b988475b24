"""Audit records of ingestion runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class IngestionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobType(str, Enum):
    SCHEDULED = "scheduled"
    RETRY = "retry"
    ON_DEMAND = "on_demand"
    GAP_FILL = "gap_fill"
    SPOT_CHECK = "spot_check"
    REFILL = "refill"


@dataclass(frozen=True)
class IngestionRun:
    """One row of the append-only ``ingestion_runs`` table."""

    run_id: str
    job_type: str
    granularity: str | None
    status: IngestionStatus
    started_at: datetime
    symbols_requested: int = 0
    symbols_processed: int = 0
    bars_inserted: int = 0
    bars_updated: int = 0
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None


__all__ = ["IngestionRun", "IngestionStatus", "JobType"]
