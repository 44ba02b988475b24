"""Creates configured DuckDB connections."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import duckdb
from duckdb import DuckDBPyConnection


@dataclass(frozen=True)
class DuckDBFactoryConfig:
    """Configuration applied to connections produced by the factory."""

    database: str | Path = ":memory:"
    read_only: bool = False
    pragmas: Mapping[str, object] = field(default_factory=lambda: {"threads": 1})


class BarCacheDuckDBFactory:
    """Factory that yields configured DuckDB connections."""

    def __init__(self, config: DuckDBFactoryConfig | None = None) -> None:
        self._config = config or DuckDBFactoryConfig()

    def create_connection(self) -> DuckDBPyConnection:
        database = str(self._config.database)
        if database != ":memory:":
            directory = os.path.dirname(database)
            if directory:
                os.makedirs(directory, exist_ok=True)
        conn = duckdb.connect(database=database, read_only=self._config.read_only)
        for setting, value in self._config.pragmas.items():
            conn.execute(f"SET {setting}=?", [value])
        return conn

    @contextmanager
    def connection(self) -> Iterator[DuckDBPyConnection]:
        conn = self.create_connection()
        try:
            yield conn
        finally:
            conn.close()


__all__ = ["BarCacheDuckDBFactory", "DuckDBFactoryConfig"]
