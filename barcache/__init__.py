"""barcache - cached OHLCV bars in front of rate-limited market data vendors.

Bars are ingested on a schedule into DuckDB, reconciled for gaps, and served
at stored or derived granularities without touching a vendor on the read path.
"""

from barcache.core import Bar, BarCacheConfig, BarCacheRuntime, BarSeries, ConfigManager, Granularity

__version__ = "0.1.0"

__all__ = ["Bar", "BarCacheConfig", "BarCacheRuntime", "BarSeries", "ConfigManager", "Granularity", "__version__"]
