"""Pytest configuration and fixtures."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport

from miningstats.main import app
from miningstats.services.cache_store import MemoryCacheStore
from miningstats.services.config import Settings
from miningstats.services.container import assemble_container, build_dataset_sources
from miningstats.services.http_client import JsonHttpClient
from miningstats.services.sources import CoinStat


NOW = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)

# Coins wired to the stub adapter in API tests
STUB_COINS = ["BTC", "XMR", "KAS"]

PRICE_PAYLOAD = {
    "bitcoin": {"usd": 64000.0},
    "monero": {"usd": 160.5},
    "kaspa": {"usd": 0.12},
}

MINERSTAT_COINS_PAYLOAD = [
    {
        "coin": "ZEC",
        "algorithm": "Equihash",
        "reward": 0.0000012,
        "price": 40.5,
        "network_hashrate": 12000000000,
        "difficulty": 71000000,
        "reward_block": 1.25,
    },
    # DGB is listed once per algorithm; only Scrypt is in the catalogue
    {"coin": "DGB", "algorithm": "SHA-256", "reward": 1e-15, "price": 0.01},
    {
        "coin": "DGB",
        "algorithm": "Scrypt",
        "reward": 2e-9,
        "price": 0.01,
        "network_hashrate": 5e14,
        "difficulty": 9000,
        "reward_block": 250,
    },
    {"coin": "BTC", "algorithm": "SHA-256", "reward": 1e-18, "price": 64000},
]

POOLS_PAYLOAD = {
    "f2pool": {"name": "F2Pool", "coins": ["BTC", "LTC"]},
    "viabtc": {"name": "ViaBTC", "coins": ["BTC", "BCH"]},
}

HARDWARE_PAYLOAD = [
    {"id": "antminer-s21", "name": "Antminer S21", "type": "asic"},
]


class FakeClock:
    """Controllable ``now`` shared by services under test."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_stat(coin: str, fetched_at: datetime = NOW, difficulty: float = 1000.0) -> CoinStat:
    """Create a provider-reported CoinStat."""
    return CoinStat(
        coin=coin,
        algorithm="test",
        difficulty=difficulty,
        network_hashrate=5.0e9,
        hashrate_estimated=False,
        block_reward=1.5,
        block_time=60,
        height=123456,
        source="stub",
        fetched_at=fetched_at,
    )


class StubCoinAdapter:
    """Stands in for every live provider; coins listed in ``failures`` raise."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.failures = {}
        self.fetch_coin = AsyncMock(side_effect=self._fetch)

    async def _fetch(self, coin: str) -> CoinStat:
        if coin in self.failures:
            raise self.failures[coin]
        return make_stat(coin, fetched_at=self.clock())

    def calls_for(self, coin: str) -> int:
        return sum(1 for call in self.fetch_coin.call_args_list if call.args[0] == coin)


async def fake_get_json(provider, url, params=None, headers=None):
    """Canned upstream answers keyed on the request URL."""
    if "coingecko" in url:
        return PRICE_PAYLOAD
    if url.endswith("/coins"):
        return MINERSTAT_COINS_PAYLOAD
    if url.endswith("/pools"):
        return POOLS_PAYLOAD
    if url.endswith("/hardware"):
        return HARDWARE_PAYLOAD
    raise AssertionError(f"Unexpected upstream URL {url}")


def upstream_calls(http, fragment: str) -> int:
    """Number of get_json calls whose URL contains ``fragment``."""
    return sum(1 for call in http.get_json.call_args_list if fragment in call.args[1])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryCacheStore()


@pytest.fixture
def upstream():
    """Mocked JSON client for MinerStat and CoinGecko."""
    http = AsyncMock(spec=JsonHttpClient)
    http.get_json.side_effect = fake_get_json
    return http


@pytest.fixture
def coin_adapter(clock):
    return StubCoinAdapter(clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        storage_backend="memory",
        ingestion_log_dir=str(tmp_path / "logs"),
        nownodes_api_key="nownodes-test",
        minerstat_api_key="minerstat-test",
        ingestion_secret="cron-test",
    )


@pytest.fixture
def make_container(settings, store, upstream, coin_adapter, clock):
    """Factory building a container around the shared store and mocks."""

    def build(**overrides):
        effective = replace(settings, **overrides)
        registry = effective.registry()
        return assemble_container(
            effective,
            store,
            {symbol: coin_adapter for symbol in STUB_COINS},
            build_dataset_sources(effective, registry, upstream, clock=clock),
            registry=registry,
            clock=clock,
        )

    return build


@pytest.fixture
def container(make_container):
    return make_container()


@pytest.fixture(scope="function")
async def client(container):
    """Create test client bound to the test container."""
    app.state.container = container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await app.state.container.orchestrator.drain()
    del app.state.container
