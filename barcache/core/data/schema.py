"""DuckDB table definitions for the bar cache."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from duckdb import DuckDBPyConnection


@dataclass(frozen=True)
class ColumnDef:
    """Represents a DuckDB table column definition."""

    name: str
    data_type: str
    constraints: Sequence[str] = ()

    def render(self) -> str:
        return " ".join([self.name, self.data_type, *self.constraints])


@dataclass(frozen=True)
class TableSchema:
    """Describes a DuckDB table and creates it on demand."""

    name: str
    columns: Sequence[ColumnDef]
    primary_key: Sequence[str] = ()
    unique: Sequence[Sequence[str]] = ()
    prelude: Sequence[str] = ()

    def create_ddl(self) -> str:
        column_defs: list[str] = [column.render() for column in self.columns]
        if self.primary_key:
            column_defs.append(f"PRIMARY KEY ({', '.join(self.primary_key)})")
        for unique_columns in self.unique:
            column_defs.append(f"UNIQUE ({', '.join(unique_columns)})")
        columns_sql = ",\n                ".join(column_defs)
        return f"""
            CREATE TABLE IF NOT EXISTS {self.name} (
                {columns_sql}
            )
            """.strip()

    def ensure(self, conn: DuckDBPyConnection) -> None:
        """Create the table (and any prerequisite objects) if missing."""

        for statement in self.prelude:
            conn.execute(statement)
        conn.execute(self.create_ddl())


SYMBOLS_TABLE = TableSchema(
    name="symbols",
    prelude=("CREATE SEQUENCE IF NOT EXISTS symbol_id_seq START 1",),
    columns=(
        ColumnDef("symbol_id", "INTEGER", ("DEFAULT nextval('symbol_id_seq')",)),
        ColumnDef("symbol", "VARCHAR", ("NOT NULL",)),
        ColumnDef("is_active", "BOOLEAN", ("NOT NULL", "DEFAULT TRUE")),
        ColumnDef("requested_at", "TIMESTAMP"),
        ColumnDef("created_at", "TIMESTAMP", ("NOT NULL",)),
    ),
    primary_key=("symbol_id",),
    unique=(("symbol",),),
)

# The primary key index also serves newest-first range scans per series.
BARS_TABLE = TableSchema(
    name="bars",
    columns=(
        ColumnDef("symbol_id", "INTEGER", ("NOT NULL",)),
        ColumnDef("granularity", "VARCHAR", ("NOT NULL",)),
        ColumnDef("ts", "TIMESTAMP", ("NOT NULL",)),
        ColumnDef("open", "DOUBLE", ("NOT NULL",)),
        ColumnDef("high", "DOUBLE", ("NOT NULL",)),
        ColumnDef("low", "DOUBLE", ("NOT NULL",)),
        ColumnDef("close", "DOUBLE", ("NOT NULL",)),
        ColumnDef("volume", "DOUBLE", ("NOT NULL",)),
        ColumnDef("vwap", "DOUBLE"),
        ColumnDef("trade_count", "BIGINT"),
        ColumnDef("source", "VARCHAR"),
        ColumnDef("updated_at", "TIMESTAMP", ("NOT NULL",)),
    ),
    primary_key=("symbol_id", "granularity", "ts"),
)

INGESTION_RUNS_TABLE = TableSchema(
    name="ingestion_runs",
    columns=(
        ColumnDef("run_id", "VARCHAR", ("NOT NULL",)),
        ColumnDef("job_type", "VARCHAR", ("NOT NULL",)),
        ColumnDef("granularity", "VARCHAR"),
        ColumnDef("symbols_requested", "INTEGER", ("DEFAULT 0",)),
        ColumnDef("symbols_processed", "INTEGER", ("DEFAULT 0",)),
        ColumnDef("bars_inserted", "INTEGER", ("DEFAULT 0",)),
        ColumnDef("bars_updated", "INTEGER", ("DEFAULT 0",)),
        ColumnDef("started_at", "TIMESTAMP", ("NOT NULL",)),
        ColumnDef("completed_at", "TIMESTAMP"),
        ColumnDef("duration_ms", "BIGINT"),
        ColumnDef("status", "VARCHAR", ("NOT NULL",)),
        ColumnDef("error_message", "VARCHAR"),
    ),
    primary_key=("run_id",),
)

CACHE_TABLES: tuple[TableSchema, ...] = (SYMBOLS_TABLE, BARS_TABLE, INGESTION_RUNS_TABLE)


def ensure_cache_tables(conn: DuckDBPyConnection) -> None:
    for table in CACHE_TABLES:
        table.ensure(conn)


__all__ = [
    "BARS_TABLE",
    "CACHE_TABLES",
    "INGESTION_RUNS_TABLE",
    "SYMBOLS_TABLE",
    "ColumnDef",
    "TableSchema",
    "ensure_cache_tables",
]
