"""DuckDB-backed persistence."""

from barcache.core.data.storage.cache_store import CacheStore, SeriesCount, UpsertResult
from barcache.core.data.storage.duckdb_factory import BarCacheDuckDBFactory, DuckDBFactoryConfig

__all__ = ["BarCacheDuckDBFactory", "CacheStore", "DuckDBFactoryConfig", "SeriesCount", "UpsertResult"]
