# Business Logic Services

from .errors import (
    MiningStatsError,
    UnsupportedCoin,
    MissingCredential,
    UpstreamError,
    Unauthorized,
    UnknownDataset,
)
from .coin_registry import (
    CoinRegistry,
    CoinSpec,
    Provider,
    HashrateFormula,
    COIN_TABLE,
    estimate_hashrate,
)
from .freshness import (
    FreshnessPolicy,
    FreshnessTier,
)
from .cache_store import (
    CacheEntry,
    CacheStore,
    MemoryCacheStore,
    FileCacheStore,
    DatabaseCacheStore,
)
from .refresh import (
    RefreshOrchestrator,
    RefreshOutcome,
    ServeSource,
)
from .mining_stats import (
    MiningStatsService,
    MiningStatsReport,
)
from .datasets import DatasetService
from .ingestion import (
    IngestionService,
    IngestionSummary,
)
from .config import (
    ConfigService,
    ConfigValidationException,
    ConfigValidationError,
    Settings,
)
from .logging_service import (
    IngestionLogService,
    IngestionLogEntry,
    setup_logging,
)
from .container import (
    ServiceContainer,
    assemble_container,
    build_container,
)

__all__ = [
    # Errors
    "MiningStatsError",
    "UnsupportedCoin",
    "MissingCredential",
    "UpstreamError",
    "Unauthorized",
    "UnknownDataset",
    # Coins
    "CoinRegistry",
    "CoinSpec",
    "Provider",
    "HashrateFormula",
    "COIN_TABLE",
    "estimate_hashrate",
    # Freshness
    "FreshnessPolicy",
    "FreshnessTier",
    # Cache
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "FileCacheStore",
    "DatabaseCacheStore",
    # Refresh
    "RefreshOrchestrator",
    "RefreshOutcome",
    "ServeSource",
    # Services
    "MiningStatsService",
    "MiningStatsReport",
    "DatasetService",
    "IngestionService",
    "IngestionSummary",
    # Config
    "ConfigService",
    "ConfigValidationException",
    "ConfigValidationError",
    "Settings",
    # Logging
    "IngestionLogService",
    "IngestionLogEntry",
    "setup_logging",
    # Wiring
    "ServiceContainer",
    "assemble_container",
    "build_container",
]
