"""Wiring of stores, adapters and services for one process."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine

from ..models.database import create_session_maker, init_db
from .cache_store import CacheStore, DatabaseCacheStore, FileCacheStore, MemoryCacheStore, utcnow
from .coin_registry import CoinRegistry
from .config import Settings
from .datasets import DatasetService
from .freshness import FreshnessPolicy
from .http_client import JsonHttpClient
from .ingestion import IngestionService
from .logging_service import IngestionLogService
from .mining_stats import STATS_KEY_PREFIX, MiningStatsService
from .refresh import RefreshOrchestrator
from .sources import (
    CoinGeckoPriceSource,
    DatasetSource,
    MinerstatCoinsSource,
    MinerstatHardwareSource,
    MinerstatPoolsSource,
    build_coin_adapters,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything request handlers need, owned by the hosting process."""
    settings: Settings
    registry: CoinRegistry
    store: CacheStore
    orchestrator: RefreshOrchestrator
    mining_stats: MiningStatsService
    datasets: DatasetService
    ingestion: IngestionService
    http: Optional[JsonHttpClient] = None
    engine: Optional[AsyncEngine] = None

    def policy_for_key(self, key: str) -> FreshnessPolicy:
        """Freshness policy governing a stored cache key."""
        if key.startswith(STATS_KEY_PREFIX):
            return self.mining_stats.policy
        return self.datasets.policy(key)

    async def close(self) -> None:
        await self.orchestrator.drain()
        if self.http is not None:
            await self.http.close()
        await self.store.close()
        if self.engine is not None:
            await self.engine.dispose()


async def build_store(settings: Settings) -> Tuple[CacheStore, Optional[AsyncEngine]]:
    """Create the configured cache backend."""
    backend = settings.storage_backend
    if backend == "memory":
        logger.warning("Using in-memory cache; entries are lost when the process exits")
        return MemoryCacheStore(), None
    if backend == "database":
        engine, session_maker = create_session_maker(settings.database_url)
        await init_db(engine)
        logger.info(f"Using database cache at {settings.database_url}")
        return DatabaseCacheStore(session_maker), engine
    if backend == "file":
        logger.info(f"Using file cache in {settings.cache_dir}")
        return FileCacheStore(Path(settings.cache_dir)), None
    raise ValueError(f"Unknown storage backend: {backend}")


def build_dataset_sources(
    settings: Settings,
    registry: CoinRegistry,
    http: JsonHttpClient,
    clock: Callable[[], datetime] = utcnow,
) -> Dict[str, DatasetSource]:
    key = settings.minerstat_api_key
    return {
        "prices": CoinGeckoPriceSource(http, registry, clock=clock),
        "coins": MinerstatCoinsSource(http, api_key=key, clock=clock),
        "pools": MinerstatPoolsSource(http, api_key=key, clock=clock),
        "hardware": MinerstatHardwareSource(http, api_key=key, clock=clock),
    }


def assemble_container(
    settings: Settings,
    store: CacheStore,
    coin_adapters,
    dataset_sources: Dict[str, DatasetSource],
    registry: Optional[CoinRegistry] = None,
    http: Optional[JsonHttpClient] = None,
    engine: Optional[AsyncEngine] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ServiceContainer:
    """Build services around already-created adapters and store."""
    registry = registry or settings.registry()
    orchestrator = RefreshOrchestrator(store, clock=clock, background_refresh=settings.background_refresh)

    policies = {name: settings.policy(name) for name in dataset_sources}
    datasets = DatasetService(dataset_sources, orchestrator, policies)
    mining_stats = MiningStatsService(
        registry,
        coin_adapters,
        orchestrator,
        policy=settings.policy("mining_stats"),
        price_source=dataset_sources.get("prices"),
        price_policy=settings.policy("prices"),
    )
    ingestion = IngestionService(
        datasets,
        mining_stats,
        secret=settings.ingestion_secret,
        run_log=IngestionLogService(settings.ingestion_log_dir),
        clock=clock,
    )
    return ServiceContainer(
        settings=settings,
        registry=registry,
        store=store,
        orchestrator=orchestrator,
        mining_stats=mining_stats,
        datasets=datasets,
        ingestion=ingestion,
        http=http,
        engine=engine,
    )


async def build_container(settings: Settings) -> ServiceContainer:
    """Production wiring: real store, shared aiohttp session, live adapters."""
    registry = settings.registry()
    store, engine = await build_store(settings)
    http = JsonHttpClient(timeout_seconds=settings.http_timeout_seconds)

    missing = [
        name for name, value in (
            ("NOWNODES_API_KEY", settings.nownodes_api_key),
            ("MINERSTAT_API_KEY", settings.minerstat_api_key),
            ("CRON_SECRET", settings.ingestion_secret),
        ) if not value
    ]
    if missing:
        logger.warning(f"Not configured: {', '.join(missing)}; dependent sources will report no_api_key")

    return assemble_container(
        settings,
        store,
        build_coin_adapters(http, registry, settings.nownodes_api_key),
        build_dataset_sources(settings, registry, http),
        registry=registry,
        http=http,
        engine=engine,
    )
