"""Upstream data sources.

Two kinds of adapters live here:

- Coin adapters turn one provider's network-info response into a CoinStat.
  Hashrate is taken from the provider when it reports one, otherwise
  estimated with the coin's validated formula, otherwise left at zero.
- Dataset sources fetch a whole catalogue (prices, MinerStat coins, pools,
  hardware) and return a ready-to-store CacheEntry. The same normaliser is
  used by on-demand fetches and by ingestion runs.

Block time and block reward always come from the CoinRegistry.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .cache_store import CacheEntry, parse_timestamp, utcnow
from .coin_registry import CoinRegistry, CoinSpec, Provider, estimate_hashrate
from .errors import MissingCredential, UnsupportedCoin, UpstreamError
from .http_client import JsonHttpClient

logger = logging.getLogger(__name__)

NOWNODES_CREDENTIAL = "NOWNODES_API_KEY"
MINERSTAT_CREDENTIAL = "MINERSTAT_API_KEY"


@dataclass
class CoinStat:
    """One snapshot of a coin's network state."""
    coin: str
    difficulty: float
    network_hashrate: float
    hashrate_estimated: bool
    block_reward: float
    block_time: float
    height: int
    source: str
    fetched_at: datetime
    algorithm: str = ""
    hashrate_formula: Optional[str] = None

    def __post_init__(self):
        if self.hashrate_estimated and not self.hashrate_formula:
            raise ValueError(f"{self.coin}: estimated hashrate requires the formula that produced it")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coin": self.coin,
            "algorithm": self.algorithm,
            "difficulty": self.difficulty,
            "network_hashrate": self.network_hashrate,
            "hashrate_estimated": self.hashrate_estimated,
            "hashrate_formula": self.hashrate_formula,
            "block_reward": self.block_reward,
            "block_time": self.block_time,
            "height": self.height,
            "source": self.source,
            "fetched_at": self.fetched_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CoinStat":
        return cls(
            coin=data["coin"],
            difficulty=data["difficulty"],
            network_hashrate=data["network_hashrate"],
            hashrate_estimated=data["hashrate_estimated"],
            block_reward=data["block_reward"],
            block_time=data["block_time"],
            height=data["height"],
            source=data["source"],
            fetched_at=parse_timestamp(data["fetched_at"]),
            algorithm=data.get("algorithm", ""),
            hashrate_formula=data.get("hashrate_formula"),
        )


def _number(value: Any) -> float:
    """Coerce a provider numeric (often a string) to float, 0 when unusable."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if result != result or result in (float("inf"), float("-inf")):
        return 0.0
    return result


def _integer(value: Any) -> int:
    return int(_number(value))


def _require_dict(provider: str, payload: Any, field: Optional[str] = None) -> Dict[str, Any]:
    """Return ``payload[field]`` (or payload) if it is an object, else fail."""
    if not isinstance(payload, dict):
        raise UpstreamError(provider, f"{provider} returned an unexpected payload")
    if field is None:
        return payload
    value = payload.get(field)
    if not isinstance(value, dict):
        raise UpstreamError(provider, f"{provider} response is missing '{field}'")
    return value


def _optional_dict(provider: str, payload: Dict[str, Any], field: str) -> Dict[str, Any]:
    """Return ``payload[field]`` if present; an absent field is an empty object."""
    value = payload.get(field)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise UpstreamError(provider, f"{provider} returned a malformed '{field}'")
    return value


# ==========================================================================
# Coin adapters
# ==========================================================================


class CoinSourceAdapter(ABC):
    """Base class for per-coin network stat providers."""

    provider: Provider
    credential_name: Optional[str] = NOWNODES_CREDENTIAL

    def __init__(
        self,
        http: JsonHttpClient,
        registry: CoinRegistry,
        api_key: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.http = http
        self.registry = registry
        self.api_key = api_key
        self.clock = clock

    def supports(self, coin: str) -> bool:
        return coin in self.registry and self.registry.get(coin).provider is self.provider

    def _auth_headers(self) -> Dict[str, str]:
        if self.credential_name is None:
            return {}
        if not self.api_key:
            raise MissingCredential(self.credential_name)
        return {"api-key": self.api_key}

    async def fetch_coin(self, coin: str) -> CoinStat:
        """Fetch and normalize one coin.

        Raises:
            UnsupportedCoin: coin is unknown or served by another provider
            MissingCredential: the provider key is not configured
            UpstreamError: the provider failed or answered nonsense
        """
        spec = self.registry.get(coin)
        if spec.provider is not self.provider:
            raise UnsupportedCoin(spec.symbol)
        stat = await self._fetch(spec)
        logger.debug(
            f"{spec.symbol} via {self.provider.value}: difficulty={stat.difficulty} "
            f"hashrate={stat.network_hashrate} estimated={stat.hashrate_estimated}"
        )
        return stat

    @abstractmethod
    async def _fetch(self, spec: CoinSpec) -> CoinStat:
        """Provider-specific request and translation."""

    def _build_stat(
        self,
        spec: CoinSpec,
        difficulty: float,
        height: int,
        reported_hashrate: Optional[float] = None,
    ) -> CoinStat:
        if reported_hashrate is not None and reported_hashrate > 0:
            hashrate, formula = reported_hashrate, None
        else:
            hashrate, formula = estimate_hashrate(spec, difficulty)

        return CoinStat(
            coin=spec.symbol,
            algorithm=spec.algorithm,
            difficulty=difficulty,
            network_hashrate=hashrate,
            hashrate_estimated=formula is not None,
            hashrate_formula=formula,
            block_reward=spec.block_reward,
            block_time=spec.block_time,
            height=height,
            source=self.provider.value,
            fetched_at=self.clock(),
        )


class BlockbookAdapter(CoinSourceAdapter):
    """NOWNodes Blockbook ``/api/v2`` status endpoint (Bitcoin-family coins)."""

    provider = Provider.NOWNODES_BLOCKBOOK

    async def _fetch(self, spec: CoinSpec) -> CoinStat:
        headers = self._auth_headers()
        url = f"https://{spec.blockbook_host}/api/v2"
        payload = await self.http.get_json(self.provider.value, url, headers=headers)
        backend = _require_dict(self.provider.value, payload, "backend")
        return self._build_stat(
            spec,
            difficulty=_number(backend.get("difficulty")),
            height=_integer(backend.get("blocks")),
        )


class KaspaAdapter(CoinSourceAdapter):
    """NOWNodes Kaspa REST: network info plus the node's hashrate figure."""

    provider = Provider.NOWNODES_KASPA
    base_url = "https://kas.nownodes.io"

    async def _fetch(self, spec: CoinSpec) -> CoinStat:
        headers = self._auth_headers()
        network, hashrate = await asyncio.gather(
            self.http.get_json(self.provider.value, f"{self.base_url}/info/network", headers=headers),
            self._fetch_hashrate(headers),
        )
        network = _require_dict(self.provider.value, network)
        return self._build_stat(
            spec,
            difficulty=_number(network.get("difficulty")),
            height=_integer(network.get("blockCount")),
            reported_hashrate=hashrate,
        )

    async def _fetch_hashrate(self, headers: Dict[str, str]) -> float:
        """Reported hashrate in H/s; 0 when the endpoint is unavailable."""
        try:
            payload = await self.http.get_json(
                self.provider.value,
                f"{self.base_url}/info/hashrate",
                params={"stringOnly": "false"},
                headers=headers,
            )
        except UpstreamError as e:
            logger.warning(f"KAS hashrate unavailable, reporting 0: {e.message}")
            return 0.0
        if not isinstance(payload, dict):
            return 0.0
        # Endpoint reports TH/s
        return _number(payload.get("hashrate")) * 1e12


class JsonRpcAdapter(CoinSourceAdapter):
    """Shared JSON-RPC call handling for NOWNodes node endpoints."""

    rpc_url: str
    rpc_version: str = "2.0"

    async def _call(self, method: str, request_id: str, params: Optional[List[Any]] = None) -> Dict[str, Any]:
        headers = self._auth_headers()
        headers["Content-Type"] = "application/json"
        body: Dict[str, Any] = {"jsonrpc": self.rpc_version, "id": request_id, "method": method}
        if params is not None:
            body["params"] = params

        payload = await self.http.post_json(self.provider.value, self.rpc_url, body, headers=headers)
        payload = _require_dict(self.provider.value, payload)
        if payload.get("error"):
            raise UpstreamError(self.provider.value, f"{method} failed: {payload['error']}")
        return _require_dict(self.provider.value, payload, "result")


class MoneroAdapter(JsonRpcAdapter):
    """Monero daemon ``get_info``; hashrate is difficulty / block time."""

    provider = Provider.NOWNODES_MONERO
    rpc_url = "https://xmr.nownodes.io/json_rpc"

    async def _fetch(self, spec: CoinSpec) -> CoinStat:
        result = await self._call("get_info", "0")
        return self._build_stat(
            spec,
            difficulty=_number(result.get("difficulty")),
            height=_integer(result.get("height")),
        )


class DigiByteAdapter(JsonRpcAdapter):
    """DigiByte ``getmininginfo`` using the SHA-256 specific fields."""

    provider = Provider.NOWNODES_DIGIBYTE
    rpc_url = "https://dgb.nownodes.io"
    rpc_version = "1.0"

    async def _fetch(self, spec: CoinSpec) -> CoinStat:
        result = await self._call("getmininginfo", "dgb-mining", params=[])
        difficulties = _optional_dict(self.provider.value, result, "difficulties")
        hashrates = _optional_dict(self.provider.value, result, "networkhashesps")
        return self._build_stat(
            spec,
            difficulty=_number(difficulties.get("sha256d")),
            height=_integer(result.get("blocks")),
            reported_hashrate=_number(hashrates.get("sha256d")),
        )


class NervosExplorerAdapter(CoinSourceAdapter):
    """Nervos explorer statistics (no key required)."""

    provider = Provider.NERVOS_EXPLORER
    credential_name = None
    url = "https://mainnet-api.explorer.nervos.org/api/v1/statistics"

    async def _fetch(self, spec: CoinSpec) -> CoinStat:
        headers = {
            "Accept": "application/vnd.api+json",
            "Content-Type": "application/vnd.api+json",
        }
        payload = await self.http.get_json(self.provider.value, self.url, headers=headers)
        attributes = _require_dict(
            self.provider.value, _require_dict(self.provider.value, payload, "data"), "attributes"
        )
        return self._build_stat(
            spec,
            difficulty=_number(attributes.get("current_epoch_difficulty")),
            height=_integer(attributes.get("tip_block_number")),
            reported_hashrate=_number(attributes.get("hash_rate")),
        )


COIN_ADAPTER_CLASSES = {
    Provider.NOWNODES_BLOCKBOOK: BlockbookAdapter,
    Provider.NOWNODES_KASPA: KaspaAdapter,
    Provider.NOWNODES_MONERO: MoneroAdapter,
    Provider.NOWNODES_DIGIBYTE: DigiByteAdapter,
    Provider.NERVOS_EXPLORER: NervosExplorerAdapter,
}


def build_coin_adapters(
    http: JsonHttpClient,
    registry: CoinRegistry,
    nownodes_api_key: Optional[str],
    clock: Callable[[], datetime] = utcnow,
) -> Dict[str, CoinSourceAdapter]:
    """Map every registry coin to the adapter of its provider."""
    adapters: Dict[Provider, CoinSourceAdapter] = {}
    by_coin: Dict[str, CoinSourceAdapter] = {}
    for symbol in registry.symbols():
        provider = registry.get(symbol).provider
        if provider not in adapters:
            adapters[provider] = COIN_ADAPTER_CLASSES[provider](
                http, registry, api_key=nownodes_api_key, clock=clock
            )
        by_coin[symbol] = adapters[provider]
    return by_coin


# ==========================================================================
# Dataset sources
# ==========================================================================


class DatasetSource(ABC):
    """A source whose whole response is cached under one key."""

    dataset: str
    provider: str
    credential_name: Optional[str] = None

    def __init__(
        self,
        http: JsonHttpClient,
        api_key: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.http = http
        self.api_key = api_key
        self.clock = clock

    def _require_key(self) -> str:
        if not self.api_key:
            raise MissingCredential(self.credential_name or self.provider)
        return self.api_key

    @abstractmethod
    async def fetch(self) -> CacheEntry:
        """Fetch and normalize the dataset."""


class CoinGeckoPriceSource(DatasetSource):
    """USD spot prices for every registry coin."""

    dataset = "prices"
    provider = "coingecko"
    url = "https://api.coingecko.com/api/v3/simple/price"

    def __init__(self, http: JsonHttpClient, registry: CoinRegistry, clock: Callable[[], datetime] = utcnow):
        super().__init__(http, clock=clock)
        self.ids = registry.coingecko_ids()

    async def fetch(self) -> CacheEntry:
        params = {"ids": ",".join(self.ids.values()), "vs_currencies": "usd"}
        payload = await self.http.get_json(self.provider, self.url, params=params)
        payload = _require_dict(self.provider, payload)

        prices: Dict[str, float] = {}
        for symbol, gecko_id in self.ids.items():
            quote = payload.get(gecko_id)
            if isinstance(quote, dict) and _number(quote.get("usd")) > 0:
                prices[symbol] = _number(quote.get("usd"))

        # An empty answer must not replace the last good prices
        if not prices:
            raise UpstreamError(self.provider, "CoinGecko returned no usable prices")

        return CacheEntry(
            data=prices,
            fetched_at=self.clock(),
            coin_count=len(prices),
            source=self.provider,
        )


@dataclass(frozen=True)
class MinerstatCoin:
    """Catalogue entry: expected algorithm and reward unit conversion."""
    algorithm: str
    unit: str
    # MinerStat reward is per 1 H/s per hour; this gives per unit per day
    multiplier: float


MINERSTAT_COINS: Dict[str, MinerstatCoin] = {
    "ZEC": MinerstatCoin("Equihash", "kSol/s", 1e3 * 24),
    "XMR": MinerstatCoin("RandomX", "KH/s", 1e3 * 24),
    "ALPH": MinerstatCoin("Blake3", "GH/s", 1e9 * 24),
    "DGB": MinerstatCoin("Scrypt", "MH/s", 1e6 * 24),
    "CKB": MinerstatCoin("Eaglesong", "GH/s", 1e9 * 24),
    "SC": MinerstatCoin("Blake2b-Sia", "GH/s", 1e9 * 24),
    "KDA": MinerstatCoin("Blake2s", "GH/s", 1e9 * 24),
}


def normalize_minerstat_coins(
    raw: Any,
    catalogue: Mapping[str, MinerstatCoin] = MINERSTAT_COINS,
) -> Dict[str, Dict[str, Any]]:
    """Keep catalogue coins whose algorithm matches, keyed by symbol."""
    if not isinstance(raw, list):
        raise UpstreamError("minerstat", "MinerStat /v2/coins did not return a list")

    processed: Dict[str, Dict[str, Any]] = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        symbol = item.get("coin")
        config = catalogue.get(symbol) if isinstance(symbol, str) else None
        # DGB is listed once per algorithm; only the catalogue one is kept
        if config is None or item.get("algorithm") != config.algorithm:
            continue

        reward = _number(item.get("reward"))
        processed[symbol] = {
            "coin": symbol,
            "algorithm": config.algorithm,
            "unit": config.unit,
            "per_unit": reward * config.multiplier,
            "price": _number(item.get("price")),
            "network_hashrate": _number(item.get("network_hashrate")),
            "difficulty": _number(item.get("difficulty")),
            "reward_block": _number(item.get("reward_block")),
            "raw_reward": item.get("reward"),
        }
    return processed


class MinerstatSource(DatasetSource):
    """Common MinerStat v2 request handling (key passed as query param)."""

    provider = "minerstat"
    credential_name = MINERSTAT_CREDENTIAL
    base_url = "https://api.minerstat.com/v2"
    path: str

    async def _get(self, params: Optional[Dict[str, str]] = None) -> Any:
        query = {"key": self._require_key()}
        query.update(params or {})
        return await self.http.get_json(self.provider, f"{self.base_url}/{self.path}", params=query)


class MinerstatCoinsSource(MinerstatSource):
    dataset = "coins"
    path = "coins"

    async def fetch(self) -> CacheEntry:
        raw = await self._get({"list": ",".join(MINERSTAT_COINS)})
        processed = normalize_minerstat_coins(raw)
        return CacheEntry(
            data=processed,
            fetched_at=self.clock(),
            coin_count=len(processed),
            raw_entries=len(raw),
            source="minerstat/v2/coins",
        )


class MinerstatPoolsSource(MinerstatSource):
    dataset = "pools"
    path = "pools"

    async def fetch(self) -> CacheEntry:
        raw = await self._get()
        if not isinstance(raw, dict):
            raise UpstreamError(self.provider, "MinerStat /v2/pools did not return an object")
        return CacheEntry(
            data=raw,
            fetched_at=self.clock(),
            entry_count=len(raw),
            source="minerstat/v2/pools",
        )


class MinerstatHardwareSource(MinerstatSource):
    dataset = "hardware"
    path = "hardware"

    async def fetch(self) -> CacheEntry:
        raw = await self._get()
        if not isinstance(raw, (list, dict)):
            raise UpstreamError(self.provider, "MinerStat /v2/hardware returned an unexpected payload")
        return CacheEntry(
            data=raw,
            fetched_at=self.clock(),
            entry_count=len(raw),
            source="minerstat/v2/hardware",
            note="Free tier returns incomplete data. Supplemental use only.",
        )
