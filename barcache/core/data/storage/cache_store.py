"""Persisted bar cache backed by DuckDB."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import duckdb
from duckdb import DuckDBPyConnection

from barcache.core.data.schema import ensure_cache_tables
from barcache.core.exceptions import CacheError, StorageLockError
from barcache.core.logging import logger
from barcache.core.models.bars import Bar
from barcache.core.models.granularity import Granularity
from barcache.core.models.ingestion import IngestionRun, IngestionStatus
from barcache.core.models.symbols import SymbolRecord
from barcache.core.patterns.retry import ExponentialBackoffRetry, RetryConfig, Sleeper


@dataclass(frozen=True)
class UpsertResult:
    inserted: int = 0
    updated: int = 0

    def __add__(self, other: "UpsertResult") -> "UpsertResult":
        return UpsertResult(self.inserted + other.inserted, self.updated + other.updated)


@dataclass(frozen=True)
class SeriesCount:
    symbol_id: int
    symbol: str
    count: int


def _to_db_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _from_db_ts(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=UTC)


class CacheStore:
    """Symbol table, bar table and ingestion audit log.

    Timestamps are stored as naive UTC. Bar writes are idempotent upserts on
    ``(symbol_id, granularity, ts)`` and retried on write conflicts.
    """

    def __init__(
        self,
        connection: DuckDBPyConnection,
        *,
        lock_retry: RetryConfig | None = None,
        sleep: Sleeper | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = connection
        self._lock_retry = lock_retry or RetryConfig(max_attempts=3, base_delay=0.1, exponential_base=2.0)
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))
        ensure_cache_tables(connection)

    @property
    def connection(self) -> DuckDBPyConnection:
        return self._conn

    # -- symbols -----------------------------------------------------------

    def get_symbol(self, symbol: str) -> SymbolRecord | None:
        row = self._conn.execute(
            "SELECT symbol_id, symbol, is_active, requested_at FROM symbols WHERE symbol = ?",
            [symbol],
        ).fetchone()
        if row is None:
            return None
        return SymbolRecord(row[0], row[1], bool(row[2]), _from_db_ts(row[3]))

    def insert_symbol(self, symbol: str) -> SymbolRecord:
        now = _to_db_ts(self._clock())
        row = self._conn.execute(
            """
            INSERT INTO symbols (symbol, is_active, requested_at, created_at)
            VALUES (?, TRUE, ?, ?)
            RETURNING symbol_id
            """,
            [symbol, now, now],
        ).fetchone()
        logger.info("symbol_inserted", symbol=symbol, symbol_id=row[0])
        return SymbolRecord(row[0], symbol, True, _from_db_ts(now))

    def reactivate_symbol(self, symbol: str) -> None:
        self._conn.execute(
            "UPDATE symbols SET is_active = TRUE, requested_at = ? WHERE symbol = ?",
            [_to_db_ts(self._clock()), symbol],
        )
        logger.info("symbol_reactivated", symbol=symbol)

    def deactivate_symbol(self, symbol: str) -> int:
        """Mark ``symbol`` inactive and drop its bars; returns bars removed."""

        record = self.get_symbol(symbol)
        if record is None:
            return 0
        removed = self._conn.execute(
            "SELECT count(*) FROM bars WHERE symbol_id = ?", [record.symbol_id]
        ).fetchone()[0]
        self._conn.execute("BEGIN TRANSACTION")
        try:
            self._conn.execute("UPDATE symbols SET is_active = FALSE WHERE symbol_id = ?", [record.symbol_id])
            self._conn.execute("DELETE FROM bars WHERE symbol_id = ?", [record.symbol_id])
            self._conn.execute("COMMIT")
        except duckdb.Error:
            self._conn.execute("ROLLBACK")
            raise
        logger.warning("symbol_deactivated", symbol=symbol, bars_removed=removed)
        return removed

    def active_symbols(self) -> list[SymbolRecord]:
        rows = self._conn.execute(
            "SELECT symbol_id, symbol, is_active, requested_at FROM symbols WHERE is_active ORDER BY symbol"
        ).fetchall()
        return [SymbolRecord(r[0], r[1], bool(r[2]), _from_db_ts(r[3])) for r in rows]

    def resolve_symbols(self, symbols: Sequence[str]) -> dict[str, SymbolRecord]:
        """Map known, active symbols to their records; unknown ones are omitted."""

        if not symbols:
            return {}
        placeholders = ", ".join("?" for _ in symbols)
        rows = self._conn.execute(
            f"""
            SELECT symbol_id, symbol, is_active, requested_at FROM symbols
            WHERE is_active AND symbol IN ({placeholders})
            """,
            list(symbols),
        ).fetchall()
        return {r[1]: SymbolRecord(r[0], r[1], bool(r[2]), _from_db_ts(r[3])) for r in rows}

    # -- bars --------------------------------------------------------------

    async def upsert_bars(
        self,
        symbol_id: int,
        granularity: Granularity,
        bars: Sequence[Bar],
        source: str,
    ) -> UpsertResult:
        """Insert or overwrite ``bars``; a repeated timestamp keeps the last value."""

        if not bars:
            return UpsertResult()
        latest_by_ts: dict[datetime, Bar] = {}
        for bar in bars:
            latest_by_ts[_to_db_ts(bar.ts)] = bar

        retry = ExponentialBackoffRetry(self._lock_retry, sleep=self._sleep)

        async def _attempt() -> UpsertResult:
            return self._upsert_once(symbol_id, granularity, latest_by_ts, source)

        return await retry.execute(_attempt)

    def _upsert_once(
        self,
        symbol_id: int,
        granularity: Granularity,
        bars: dict[datetime, Bar],
        source: str,
    ) -> UpsertResult:
        now = _to_db_ts(self._clock())
        timestamps = sorted(bars)
        rows = [
            [
                symbol_id,
                granularity.value,
                ts,
                bar.open,
                bar.high,
                bar.low,
                bar.close,
                bar.volume,
                bar.vwap,
                bar.trade_count,
                source,
                now,
            ]
            for ts, bar in sorted(bars.items())
        ]
        try:
            self._conn.execute("BEGIN TRANSACTION")
            stored = self._conn.execute(
                """
                SELECT ts FROM bars
                WHERE symbol_id = ? AND granularity = ? AND ts BETWEEN ? AND ?
                """,
                [symbol_id, granularity.value, timestamps[0], timestamps[-1]],
            ).fetchall()
            existing = len({row[0] for row in stored} & bars.keys())
            self._conn.executemany(
                """
                INSERT INTO bars
                (symbol_id, granularity, ts, open, high, low, close, volume, vwap, trade_count, source, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (symbol_id, granularity, ts) DO UPDATE SET
                    open = excluded.open,
                    high = excluded.high,
                    low = excluded.low,
                    close = excluded.close,
                    volume = excluded.volume,
                    vwap = excluded.vwap,
                    trade_count = excluded.trade_count,
                    source = excluded.source,
                    updated_at = excluded.updated_at
                """,
                rows,
            )
            self._conn.execute("COMMIT")
        except duckdb.TransactionException as exc:
            self._rollback()
            raise StorageLockError(f"Write conflict upserting bars: {exc}", {"symbol_id": symbol_id}) from exc
        except duckdb.Error as exc:
            self._rollback()
            raise CacheError(f"Failed to upsert bars: {exc}", table="bars") from exc
        return UpsertResult(inserted=len(rows) - existing, updated=existing)

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except duckdb.TransactionException:
            # no transaction was active
            pass

    def read_bars(
        self,
        symbol_id: int,
        granularity: Granularity,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        rows = self._conn.execute(
            """
            SELECT ts, open, high, low, close, volume, vwap, trade_count, source
            FROM bars
            WHERE symbol_id = ? AND granularity = ? AND ts >= ? AND ts <= ?
            ORDER BY ts ASC
            """,
            [symbol_id, granularity.value, _to_db_ts(start), _to_db_ts(end)],
        ).fetchall()
        return [
            Bar.model_construct(
                ts=_from_db_ts(r[0]),
                open=r[1],
                high=r[2],
                low=r[3],
                close=r[4],
                volume=r[5],
                vwap=r[6],
                trade_count=r[7],
                source=r[8],
            )
            for r in rows
        ]

    def latest_timestamp(self, symbol_id: int, granularity: Granularity) -> datetime | None:
        row = self._conn.execute(
            "SELECT max(ts) FROM bars WHERE symbol_id = ? AND granularity = ?",
            [symbol_id, granularity.value],
        ).fetchone()
        return _from_db_ts(row[0]) if row else None

    def count_bars(self, symbol_id: int, granularity: Granularity) -> int:
        return self._conn.execute(
            "SELECT count(*) FROM bars WHERE symbol_id = ? AND granularity = ?",
            [symbol_id, granularity.value],
        ).fetchone()[0]

    def bar_counts(self, granularity: Granularity) -> list[SeriesCount]:
        """Stored bar count per active symbol (zero when nothing is stored)."""

        rows = self._conn.execute(
            """
            SELECT s.symbol_id, s.symbol, count(b.ts)
            FROM symbols s
            LEFT JOIN bars b ON b.symbol_id = s.symbol_id AND b.granularity = ?
            WHERE s.is_active
            GROUP BY s.symbol_id, s.symbol
            ORDER BY s.symbol
            """,
            [granularity.value],
        ).fetchall()
        return [SeriesCount(r[0], r[1], r[2]) for r in rows]

    def evict_oldest(self, max_per_series: int) -> int:
        """Delete the oldest bars beyond ``max_per_series`` for every (symbol, granularity)."""

        ranked = """
            SELECT symbol_id, granularity, ts,
                   row_number() OVER (PARTITION BY symbol_id, granularity ORDER BY ts DESC) AS rn
            FROM bars
        """
        excess = self._conn.execute(f"SELECT count(*) FROM ({ranked}) WHERE rn > ?", [max_per_series]).fetchone()[0]
        if excess:
            self._conn.execute(
                f"""
                DELETE FROM bars USING ({ranked}) AS ranked
                WHERE bars.symbol_id = ranked.symbol_id
                  AND bars.granularity = ranked.granularity
                  AND bars.ts = ranked.ts
                  AND ranked.rn > ?
                """,
                [max_per_series],
            )
        logger.info("bars_evicted", removed=excess, ceiling=max_per_series)
        return excess

    # -- audit log ---------------------------------------------------------

    def start_run(self, job_type: str, granularity: str | None, symbols_requested: int) -> IngestionRun:
        run = IngestionRun(
            run_id=uuid4().hex,
            job_type=job_type,
            granularity=granularity,
            status=IngestionStatus.RUNNING,
            started_at=self._clock(),
            symbols_requested=symbols_requested,
        )
        self._conn.execute(
            """
            INSERT INTO ingestion_runs (run_id, job_type, granularity, symbols_requested, started_at, status)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [run.run_id, job_type, granularity, symbols_requested, _to_db_ts(run.started_at), run.status.value],
        )
        return run

    def finish_run(
        self,
        run: IngestionRun,
        status: IngestionStatus,
        *,
        symbols_processed: int = 0,
        upserted: UpsertResult | None = None,
        error_message: str | None = None,
    ) -> IngestionRun:
        completed_at = self._clock()
        duration_ms = int((completed_at - run.started_at).total_seconds() * 1000)
        upserted = upserted or UpsertResult()
        self._conn.execute(
            """
            UPDATE ingestion_runs SET
                symbols_processed = ?, bars_inserted = ?, bars_updated = ?,
                completed_at = ?, duration_ms = ?, status = ?, error_message = ?
            WHERE run_id = ?
            """,
            [
                symbols_processed,
                upserted.inserted,
                upserted.updated,
                _to_db_ts(completed_at),
                duration_ms,
                status.value,
                error_message,
                run.run_id,
            ],
        )
        return IngestionRun(
            run_id=run.run_id,
            job_type=run.job_type,
            granularity=run.granularity,
            status=status,
            started_at=run.started_at,
            symbols_requested=run.symbols_requested,
            symbols_processed=symbols_processed,
            bars_inserted=upserted.inserted,
            bars_updated=upserted.updated,
            completed_at=completed_at,
            duration_ms=duration_ms,
            error_message=error_message,
        )

    def recent_runs(self, limit: int = 10) -> list[IngestionRun]:
        rows = self._conn.execute(
            """
            SELECT run_id, job_type, granularity, status, started_at, symbols_requested, symbols_processed,
                   bars_inserted, bars_updated, completed_at, duration_ms, error_message
            FROM ingestion_runs ORDER BY started_at DESC LIMIT ?
            """,
            [limit],
        ).fetchall()
        return [
            IngestionRun(
                run_id=r[0],
                job_type=r[1],
                granularity=r[2],
                status=IngestionStatus(r[3]),
                started_at=_from_db_ts(r[4]),
                symbols_requested=r[5],
                symbols_processed=r[6],
                bars_inserted=r[7],
                bars_updated=r[8],
                completed_at=_from_db_ts(r[9]),
                duration_ms=r[10],
                error_message=r[11],
            )
            for r in rows
        ]

    def stats(self) -> dict[str, Any]:
        total, active = self._conn.execute(
            "SELECT count(*), count(*) FILTER (WHERE is_active) FROM symbols"
        ).fetchone()
        per_granularity = self._conn.execute(
            """
            SELECT granularity, count(*), min(ts), max(ts)
            FROM bars GROUP BY granularity ORDER BY granularity
            """
        ).fetchall()
        return {
            "symbols": {"total": total, "active": active},
            "bars": [
                {
                    "granularity": r[0],
                    "count": r[1],
                    "oldest": _from_db_ts(r[2]),
                    "latest": _from_db_ts(r[3]),
                }
                for r in per_granularity
            ],
        }


__all__ = ["CacheStore", "SeriesCount", "UpsertResult"]
