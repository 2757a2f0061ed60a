"""Live per-coin mining statistics.

Each coin is cached under its own key (``mining-stats.<SYMBOL>``) so that a
slow or failing provider only affects its own coins. A batch request fans
out over the coins concurrently and collects one RefreshOutcome per coin.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .cache_store import CacheEntry
from .coin_registry import CoinRegistry
from .errors import MiningStatsError, UnsupportedCoin, UpstreamError
from .freshness import FreshnessPolicy
from .refresh import RefreshOrchestrator, RefreshOutcome
from .sources import CoinSourceAdapter, DatasetSource

logger = logging.getLogger(__name__)

STATS_KEY_PREFIX = "mining-stats."
PRICES_KEY = "prices"


def stats_key(symbol: str) -> str:
    return f"{STATS_KEY_PREFIX}{symbol.upper()}"


@dataclass
class MiningStatsReport:
    """Everything a mining-stats response is assembled from."""
    outcomes: Dict[str, RefreshOutcome]
    prices: Optional[RefreshOutcome]
    policy: FreshnessPolicy
    single: Optional[str] = None


class MiningStatsService:
    """Serves CoinStat snapshots through the refresh orchestrator."""

    def __init__(
        self,
        registry: CoinRegistry,
        adapters: Mapping[str, CoinSourceAdapter],
        orchestrator: RefreshOrchestrator,
        policy: FreshnessPolicy,
        price_source: Optional[DatasetSource] = None,
        price_policy: Optional[FreshnessPolicy] = None,
    ):
        self.registry = registry
        self.adapters = dict(adapters)
        self.orchestrator = orchestrator
        self.policy = policy
        self.price_source = price_source
        self.price_policy = price_policy or policy

    def supported_coins(self) -> List[str]:
        return [symbol for symbol in self.registry.symbols() if symbol in self.adapters]

    def _fetcher(self, symbol: str):
        adapter = self.adapters.get(symbol)
        if adapter is None or symbol not in self.registry:
            raise UnsupportedCoin(symbol)

        provider = self.registry.get(symbol).provider.value

        async def fetch() -> CacheEntry:
            try:
                stat = await adapter.fetch_coin(symbol)
            except MiningStatsError:
                raise
            except Exception as e:
                # Reported as this coin's error, the rest of the batch is unaffected
                logger.exception(f"Unexpected error fetching {symbol} from {provider}")
                raise UpstreamError(provider, f"{provider} fetch failed unexpectedly: {e!r}") from e
            return CacheEntry(
                data=stat.to_dict(),
                fetched_at=stat.fetched_at,
                coin_count=1,
                source=stat.source,
            )

        return fetch

    async def resolve_coin(self, symbol: str, policy: FreshnessPolicy, force: bool = False) -> RefreshOutcome:
        symbol = symbol.upper()
        try:
            fetch = self._fetcher(symbol)
        except UnsupportedCoin as e:
            return RefreshOutcome.failed(stats_key(symbol), e)
        return await self.orchestrator.resolve(stats_key(symbol), fetch, policy, force=force)

    async def resolve_prices(self) -> Optional[RefreshOutcome]:
        if self.price_source is None:
            return None
        return await self.orchestrator.resolve(PRICES_KEY, self.price_source.fetch, self.price_policy)

    async def get_stats(
        self,
        coin: Optional[str] = None,
        force: bool = False,
        fresh_hours: Optional[float] = None,
    ) -> MiningStatsReport:
        """Resolve one coin or every supported coin, plus prices.

        Prices keep their own tier and are never force-refreshed here.
        """
        policy = self.policy.with_fresh_hours(fresh_hours)
        symbols = [coin.upper()] if coin else self.supported_coins()

        results = await asyncio.gather(
            self.resolve_prices(),
            *(self.resolve_coin(symbol, policy, force=force) for symbol in symbols),
        )
        prices, coin_outcomes = results[0], results[1:]
        failed = [symbol for symbol, outcome in zip(symbols, coin_outcomes) if outcome.entry is None]
        if failed:
            logger.info(f"No data for {', '.join(failed)} in this request")
        return MiningStatsReport(
            outcomes=dict(zip(symbols, coin_outcomes)),
            prices=prices,
            policy=policy,
            single=symbols[0] if coin else None,
        )

    async def refresh_all(self) -> Dict[str, Optional[MiningStatsError]]:
        """Fetch every supported coin unconditionally.

        Returns the error per coin, ``None`` for coins that refreshed.
        """
        symbols = self.supported_coins()

        async def refresh_one(symbol: str) -> Optional[MiningStatsError]:
            try:
                await self.orchestrator.refresh(stats_key(symbol), self._fetcher(symbol))
            except MiningStatsError as e:
                return e
            return None

        errors = await asyncio.gather(*(refresh_one(symbol) for symbol in symbols))
        return dict(zip(symbols, errors))
