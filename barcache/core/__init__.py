"""barcache core: models, storage, vendors and services."""

from barcache.core.config.settings import BarCacheConfig, ConfigManager
from barcache.core.models.bars import Bar, BarSeries
from barcache.core.models.granularity import Granularity
from barcache.core.runtime import BarCacheRuntime

__all__ = ["Bar", "BarCacheConfig", "BarCacheRuntime", "BarSeries", "ConfigManager", "Granularity"]
