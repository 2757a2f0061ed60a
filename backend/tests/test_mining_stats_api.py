"""Tests for the mining stats API."""

import pytest

from miningstats.services.errors import MissingCredential, UpstreamError


@pytest.mark.asyncio
async def test_batch_cold_start(client, coin_adapter):
    """Test every supported coin is fetched once and prices are embedded."""
    response = await client.get("/api/mining-stats")
    assert response.status_code == 200
    body = response.json()

    assert body["success"] is True
    assert body["cache_hours"] == 1
    assert set(body["data"]) == {"BTC", "XMR", "KAS"}
    assert body["prices"]["BTC"] == 64000.0

    btc = body["data"]["BTC"]
    assert btc["difficulty"] == 1000.0
    assert btc["hashrate_estimated"] is False
    assert btc["from_cache"] is False
    assert btc["stale"] is False
    assert btc["age_seconds"] == 0

    assert body["meta"]["coin_count"] == 3
    assert body["meta"]["requested"] == 3
    assert body["meta"]["errors"] == 0
    assert body["meta"]["stale"] is False
    assert response.headers["cache-control"] == "s-maxage=300, stale-while-revalidate=600"
    assert coin_adapter.fetch_coin.await_count == 3


@pytest.mark.asyncio
async def test_batch_partial_failure(client, coin_adapter):
    """Test one failing coin is embedded as an error, the rest succeed."""
    coin_adapter.failures["XMR"] = UpstreamError("nownodes-monero", "nownodes-monero returned HTTP 502", status=502)

    response = await client.get("/api/mining-stats")
    assert response.status_code == 200
    body = response.json()

    assert body["success"] is True
    assert body["data"]["BTC"]["coin"] == "BTC"
    assert body["data"]["KAS"]["coin"] == "KAS"
    assert body["data"]["XMR"] == {
        "coin": "XMR",
        "error": "fetch_failed",
        "message": "nownodes-monero returned HTTP 502",
    }
    assert body["meta"]["coin_count"] == 2
    assert body["meta"]["errors"] == 1


@pytest.mark.asyncio
async def test_batch_survives_unexpected_adapter_error(client, coin_adapter):
    """Test a non-taxonomy exception in one adapter only fails that coin."""
    coin_adapter.failures["XMR"] = AttributeError("'list' object has no attribute 'get'")

    response = await client.get("/api/mining-stats")
    assert response.status_code == 200
    body = response.json()

    assert body["data"]["BTC"]["difficulty"] == 1000.0
    assert body["data"]["KAS"]["difficulty"] == 1000.0
    assert body["data"]["XMR"]["error"] == "fetch_failed"
    assert "nownodes-monero" in body["data"]["XMR"]["message"]
    assert body["meta"]["errors"] == 1


@pytest.mark.asyncio
async def test_unexpected_error_on_refresh_falls_back_to_cache(client, coin_adapter):
    await client.get("/api/mining-stats", params={"coin": "XMR"})
    coin_adapter.failures["XMR"] = KeyError("difficulty")

    response = await client.get("/api/mining-stats", params={"coin": "XMR", "refresh": "true"})
    assert response.status_code == 200
    result = response.json()["data"]

    assert result["difficulty"] == 1000.0
    assert result["from_cache"] is True
    assert result["stale"] is True
    assert result["error"] == "fetch_failed"


@pytest.mark.asyncio
async def test_missing_credential_per_coin(client, coin_adapter):
    coin_adapter.failures["KAS"] = MissingCredential("NOWNODES_API_KEY")
    body = (await client.get("/api/mining-stats")).json()
    assert body["data"]["KAS"]["error"] == "no_api_key"
    assert "difficulty" in body["data"]["BTC"]


@pytest.mark.asyncio
async def test_single_coin(client, coin_adapter):
    response = await client.get("/api/mining-stats", params={"coin": "btc"})
    body = response.json()

    assert body["success"] is True
    assert body["data"]["coin"] == "BTC"
    assert body["meta"]["requested"] == 1
    assert coin_adapter.calls_for("BTC") == 1
    assert coin_adapter.calls_for("XMR") == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("coin", ["DOGE", "NOTACOIN"])
async def test_unsupported_coin(client, coin_adapter, coin):
    response = await client.get("/api/mining-stats", params={"coin": coin})
    assert response.status_code == 200
    body = response.json()

    assert body["success"] is True
    assert body["data"]["error"] == "unsupported_coin"
    assert body["meta"]["coin_count"] == 0
    coin_adapter.fetch_coin.assert_not_called()


@pytest.mark.asyncio
async def test_second_call_within_fresh_window_is_cached(client, coin_adapter):
    await client.get("/api/mining-stats", params={"coin": "BTC"})
    body = (await client.get("/api/mining-stats", params={"coin": "BTC"})).json()

    assert body["data"]["from_cache"] is True
    assert coin_adapter.calls_for("BTC") == 1


@pytest.mark.asyncio
async def test_stale_then_cache_hours_override(client, coin_adapter, clock):
    await client.get("/api/mining-stats", params={"coin": "BTC"})
    clock.advance(hours=2)

    stale = (await client.get("/api/mining-stats", params={"coin": "BTC"})).json()
    assert stale["data"]["stale"] is True
    assert stale["data"]["age_seconds"] == 7200
    assert stale["meta"]["stale"] is True

    relaxed = (await client.get("/api/mining-stats", params={"coin": "BTC", "cacheHours": 3})).json()
    assert relaxed["cache_hours"] == 3
    assert relaxed["data"]["stale"] is False
    assert relaxed["data"]["from_cache"] is True
    assert coin_adapter.calls_for("BTC") == 1


@pytest.mark.asyncio
async def test_refresh_forces_fetch(client, coin_adapter):
    await client.get("/api/mining-stats", params={"coin": "BTC"})
    body = (await client.get("/api/mining-stats", params={"coin": "BTC", "refresh": "true"})).json()

    assert body["data"]["from_cache"] is False
    assert coin_adapter.calls_for("BTC") == 2


@pytest.mark.asyncio
async def test_refresh_failure_falls_back_to_cache(client, coin_adapter, clock):
    await client.get("/api/mining-stats", params={"coin": "BTC"})
    clock.advance(minutes=10)
    coin_adapter.failures["BTC"] = UpstreamError("nownodes-blockbook", "nownodes-blockbook timed out after 8.0s")

    response = await client.get("/api/mining-stats", params={"coin": "BTC", "refresh": "true"})
    assert response.status_code == 200
    result = response.json()["data"]

    assert result["difficulty"] == 1000.0
    assert result["stale"] is True
    assert result["from_cache"] is True
    assert result["error"] == "fetch_failed"
    assert "timed out" in result["message"]


@pytest.mark.asyncio
async def test_prices_failure_does_not_fail_stats(client, upstream):
    upstream.get_json.side_effect = UpstreamError("coingecko", "coingecko returned HTTP 429", status=429)
    body = (await client.get("/api/mining-stats")).json()

    assert body["success"] is True
    assert body["prices"] == {}
    assert "prices_stale" not in body["meta"]
    assert body["meta"]["coin_count"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["0", "-1", "abc"])
async def test_invalid_cache_hours(client, value):
    response = await client.get("/api/mining-stats", params={"cacheHours": value})
    assert response.status_code == 422
