"""Configuration management."""

from barcache.core.config.settings import (
    BarCacheConfig,
    ConfigManager,
    IngestionConfig,
    LoggingConfig,
    StalenessConfig,
    StoreConfig,
    VendorConfig,
    get_default_config,
    load_config_from_env,
)

__all__ = [
    "BarCacheConfig",
    "ConfigManager",
    "IngestionConfig",
    "LoggingConfig",
    "StalenessConfig",
    "StoreConfig",
    "VendorConfig",
    "get_default_config",
    "load_config_from_env",
]
