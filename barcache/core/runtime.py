"""Wires configuration into a running bar cache."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from random import Random

from duckdb import DuckDBPyConnection

from barcache.core.config.settings import BarCacheConfig
from barcache.core.data.providers.alpaca import AlpacaVendor
from barcache.core.data.providers.base import VendorClient
from barcache.core.data.providers.fallback import FallbackClient
from barcache.core.data.providers.oauth import SchwabTokenManager
from barcache.core.data.providers.rate_limiter import RollingWindowRateLimiter
from barcache.core.data.providers.schwab import SchwabVendor
from barcache.core.data.storage.cache_store import CacheStore
from barcache.core.data.storage.duckdb_factory import BarCacheDuckDBFactory, DuckDBFactoryConfig
from barcache.core.exceptions import ConfigurationError
from barcache.core.logging import logger
from barcache.core.monitoring import MetricsCollector, get_metrics_collector
from barcache.core.patterns.retry import RetryConfig
from barcache.core.services.bars import BarService
from barcache.core.services.batch import BatchProcessor
from barcache.core.services.gap_reconciler import GapReconciler
from barcache.core.services.ingestion import IngestionService
from barcache.core.services.queue import CollectionQueue
from barcache.core.services.scheduler import IngestionScheduler
from barcache.core.services.sessions import MarketSession
from barcache.core.services.staleness import RecentCollections, StalenessPolicy


def build_vendors(config: BarCacheConfig) -> list[VendorClient]:
    """Instantiate the vendors named in ``provider_priority``."""

    settings = config.vendors
    vendors: list[VendorClient] = []
    for name in settings.provider_priority:
        if name == "alpaca":
            vendors.append(
                AlpacaVendor(
                    settings.alpaca_api_key,
                    settings.alpaca_api_secret,
                    base_url=settings.alpaca_base_url,
                    feed=settings.alpaca_feed,
                    timeout=settings.timeout,
                    rate_limiter=RollingWindowRateLimiter(settings.alpaca_requests_per_minute, 60.0, name="alpaca"),
                    rate_limit_cooldown=settings.alpaca_rate_limit_cooldown,
                )
            )
        elif name == "schwab":
            tokens = SchwabTokenManager(
                settings.schwab_token_path,
                settings.schwab_client_id,
                settings.schwab_client_secret,
                token_url=settings.schwab_token_url,
            )
            vendors.append(SchwabVendor(tokens, base_url=settings.schwab_base_url, timeout=settings.timeout))
        else:
            raise ConfigurationError(f"Unknown vendor '{name}'", field="vendors.provider_priority")
    return vendors


@dataclass
class BarCacheRuntime:
    """Every long-lived component of one bar cache process."""

    config: BarCacheConfig
    connection: DuckDBPyConnection
    store: CacheStore
    client: FallbackClient
    ingestion: IngestionService
    queue: CollectionQueue
    gaps: GapReconciler
    scheduler: IngestionScheduler
    bars: BarService
    metrics: MetricsCollector

    @classmethod
    def build(
        cls,
        config: BarCacheConfig,
        *,
        vendors: list[VendorClient] | None = None,
        connection: DuckDBPyConnection | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: Random | None = None,
    ) -> "BarCacheRuntime":
        clock = clock or (lambda: datetime.now(UTC))
        metrics = metrics or get_metrics_collector()
        if connection is None:
            factory = BarCacheDuckDBFactory(
                DuckDBFactoryConfig(database=config.store.database, pragmas={"threads": config.store.threads})
            )
            connection = factory.create_connection()

        store = CacheStore(
            connection,
            lock_retry=RetryConfig(
                max_attempts=config.store.lock_retry_attempts,
                base_delay=config.store.lock_retry_base_delay,
            ),
            clock=clock,
        )
        client = FallbackClient(vendors if vendors is not None else build_vendors(config), metrics=metrics)
        staleness = config.staleness
        recent = RecentCollections(clock=clock)
        ingestion = IngestionService(
            store,
            client,
            BatchProcessor(batch_size=config.ingestion.batch_size, inter_batch_delay=config.ingestion.inter_batch_delay),
            recent=recent,
            metrics=metrics,
            clock=clock,
        )
        queue = CollectionQueue(store, ingestion, metrics=metrics)
        session = MarketSession(timezone=config.ingestion.timezone)
        gaps = GapReconciler(store, ingestion, queue_busy=lambda: queue.is_draining, rng=rng)
        scheduler = IngestionScheduler(
            store,
            ingestion,
            queue,
            gaps,
            session=session,
            config=config.ingestion,
            max_bars_per_series=config.store.max_bars_per_series,
            clock=clock,
        )
        policy = StalenessPolicy(
            intraday_threshold_minutes=staleness.intraday_threshold_minutes,
            daily_threshold_minutes=staleness.daily_threshold_minutes,
            closed_session_floor_minutes=staleness.closed_session_floor_minutes,
            recent_override=timedelta(seconds=staleness.recent_override_seconds),
            session=session,
        )
        bars = BarService(
            store,
            queue,
            client,
            session=session,
            policy=policy,
            recent=recent,
            metrics=metrics,
            clock=clock,
            retry_after=staleness.retry_after_seconds,
        )
        logger.info("runtime_built", vendors=client.vendor_names, database=config.store.database)
        return cls(config, connection, store, client, ingestion, queue, gaps, scheduler, bars, metrics)

    def start(self) -> None:
        if self.config.ingestion.enabled:
            self.scheduler.start()
        else:
            logger.info("scheduler_disabled")

    async def aclose(self) -> None:
        self.scheduler.shutdown()
        await self.bars.wait_background()
        await self.client.aclose()
        self.connection.close()


__all__ = ["BarCacheRuntime", "build_vendors"]
