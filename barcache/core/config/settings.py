"""Configuration for the bar cache service."""

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from barcache.core.exceptions import ConfigurationError
from barcache.core.logging import logger


@dataclass
class StoreConfig:
    """DuckDB store settings."""

    database: str = str(Path.home() / ".barcache" / "bars.duckdb")
    threads: int = 1
    max_bars_per_series: int = 600
    lock_retry_attempts: int = 3
    lock_retry_base_delay: float = 0.1


@dataclass
class VendorConfig:
    """Upstream vendor credentials and limits."""

    provider_priority: list[str] = field(default_factory=lambda: ["schwab", "alpaca"])
    timeout: float = 30.0
    alpaca_api_key: str | None = None
    alpaca_api_secret: str | None = None
    alpaca_base_url: str = "https://data.alpaca.markets"
    alpaca_feed: str = "iex"
    alpaca_requests_per_minute: int = 100
    alpaca_rate_limit_cooldown: float = 60.0
    schwab_client_id: str | None = None
    schwab_client_secret: str | None = None
    schwab_base_url: str = "https://api.schwabapi.com/marketdata/v1"
    schwab_token_url: str = "https://api.schwabapi.com/v1/oauth/token"
    schwab_token_path: str = str(Path.home() / ".barcache" / "schwab_tokens.json")


@dataclass
class IngestionConfig:
    """Scheduling and batching settings."""

    enabled: bool = True
    batch_size: int = 50
    inter_batch_delay: float = 0.5  # seconds
    timezone: str = "America/New_York"
    spot_check_minutes: int = 30
    refill_hours: int = 6
    refill_min_daily_bars: int = 100
    eviction_hour: int = 3


@dataclass
class StalenessConfig:
    """Freshness thresholds in minutes."""

    intraday_threshold_minutes: float = 1440
    daily_threshold_minutes: float = 4 * 24 * 60
    closed_session_floor_minutes: float = 24 * 60
    recent_override_seconds: float = 120
    retry_after_seconds: int = 15


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    file: str | None = None


@dataclass
class BarCacheConfig:
    """Top-level configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    vendors: VendorConfig = field(default_factory=VendorConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    staleness: StalenessConfig = field(default_factory=StalenessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        if self.ingestion.batch_size <= 0:
            raise ConfigurationError("batch_size must be positive", field="ingestion.batch_size")
        if self.store.max_bars_per_series <= 0:
            raise ConfigurationError("max_bars_per_series must be positive", field="store.max_bars_per_series")
        if not self.vendors.provider_priority:
            raise ConfigurationError("provider_priority must name at least one vendor", field="vendors.provider_priority")

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "BarCacheConfig":
        """Build a configuration from nested dictionaries."""
        try:
            return cls(
                store=StoreConfig(**config_dict.get("store", {})),
                vendors=VendorConfig(**config_dict.get("vendors", {})),
                ingestion=IngestionConfig(**config_dict.get("ingestion", {})),
                staleness=StalenessConfig(**config_dict.get("staleness", {})),
                logging=LoggingConfig(**config_dict.get("logging", {})),
            )
        except TypeError as exc:
            raise ConfigurationError(f"Unknown configuration key: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "store": asdict(self.store),
            "vendors": asdict(self.vendors),
            "ingestion": asdict(self.ingestion),
            "staleness": asdict(self.staleness),
            "logging": asdict(self.logging),
        }


class ConfigManager:
    """Loads configuration from a TOML file merged with environment overrides."""

    def __init__(self, config_path: Path | None = None, *, environ: dict[str, str] | None = None):
        """
        Args:
            config_path: TOML file, defaults to ``~/.barcache/config.toml``
            environ: environment mapping, defaults to ``os.environ``
        """
        self.config_path = config_path or Path.home() / ".barcache" / "config.toml"
        self._environ = environ
        self.config = self._load_config()

    def _load_config(self) -> BarCacheConfig:
        config_dict: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise ConfigurationError(f"Failed to load config from {self.config_path}: {exc}") from exc
            logger.debug("config_loaded", path=str(self.config_path))

        _deep_update(config_dict, load_config_from_env(self._environ))
        return BarCacheConfig.from_dict(config_dict)

    def get_config(self) -> BarCacheConfig:
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Apply nested overrides, e.g. ``update_config(store={"threads": 2})``."""
        config_dict = self.config.to_dict()
        _deep_update(config_dict, updates)
        self.config = BarCacheConfig.from_dict(config_dict)


def _deep_update(d: dict[str, Any], u: dict[str, Any]) -> dict[str, Any]:
    for k, v in u.items():
        if isinstance(v, dict):
            d[k] = _deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


def get_default_config() -> BarCacheConfig:
    return BarCacheConfig()


def _env_int(env: dict[str, str], name: str) -> int | None:
    value = env.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", field=name) from exc


def load_config_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Read configuration overrides from ``BARCACHE_*`` and vendor variables."""
    env = dict(os.environ) if environ is None else environ
    config: dict[str, Any] = {}

    store: dict[str, Any] = {}
    if env.get("BARCACHE_DATABASE"):
        store["database"] = env["BARCACHE_DATABASE"]
    max_bars = _env_int(env, "BARCACHE_MAX_BARS_PER_SERIES") or _env_int(env, "MAX_CANDLES_PER_INTERVAL")
    if max_bars is not None:
        store["max_bars_per_series"] = max_bars
    if store:
        config["store"] = store

    vendors: dict[str, Any] = {}
    priority = env.get("BARCACHE_PROVIDER_PRIORITY") or env.get("PROVIDER_PRIORITY")
    if priority:
        vendors["provider_priority"] = [name.strip().lower() for name in priority.split(",") if name.strip()]
    for env_name, key in (
        ("ALPACA_API_KEY", "alpaca_api_key"),
        ("ALPACA_API_SECRET", "alpaca_api_secret"),
        ("SCHWAB_CLIENT_ID", "schwab_client_id"),
        ("SCHWAB_CLIENT_SECRET", "schwab_client_secret"),
        ("BARCACHE_SCHWAB_TOKEN_PATH", "schwab_token_path"),
    ):
        if env.get(env_name):
            vendors[key] = env[env_name]
    if vendors:
        config["vendors"] = vendors

    ingestion: dict[str, Any] = {}
    batch_size = _env_int(env, "BARCACHE_BATCH_SIZE") or _env_int(env, "ALPACA_BATCH_SIZE")
    if batch_size is not None:
        ingestion["batch_size"] = batch_size
    enabled = env.get("BARCACHE_COLLECTION_ENABLED")
    if enabled is not None:
        ingestion["enabled"] = enabled.lower() == "true"
    if ingestion:
        config["ingestion"] = ingestion

    stale = _env_int(env, "BARCACHE_DATA_STALE_MINUTES") or _env_int(env, "DATA_STALE_MINUTES")
    if stale is not None:
        config["staleness"] = {"intraday_threshold_minutes": stale}

    logging_config: dict[str, Any] = {}
    if env.get("BARCACHE_LOGGING_LEVEL"):
        logging_config["level"] = env["BARCACHE_LOGGING_LEVEL"]
    if env.get("BARCACHE_LOGGING_FILE"):
        logging_config["file"] = env["BARCACHE_LOGGING_FILE"]
    if logging_config:
        config["logging"] = logging_config

    return config


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
