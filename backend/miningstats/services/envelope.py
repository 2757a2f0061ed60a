"""Response assembly.

Turns RefreshOutcome objects into the JSON envelopes the frontend reads.
Per-coin failures are embedded next to the successful coins; the top-level
``success`` flag of a batch only says the request itself was handled.
"""

from typing import Any, Dict, Mapping, Optional

from .errors import MiningStatsError, UnsupportedCoin
from .refresh import RefreshOutcome


def _error_fields(error: MiningStatsError, cold: bool = False) -> Dict[str, Any]:
    fields = error.to_dict()
    if cold:
        fields["message"] = f"No cache available and {error.message}"
    return fields


def build_meta(outcome: RefreshOutcome) -> Optional[Dict[str, Any]]:
    """Freshness metadata for one served entry."""
    entry = outcome.entry
    if entry is None:
        return None

    age = int(outcome.age_seconds or 0)
    meta: Dict[str, Any] = {
        "fetched_at": entry.fetched_at.isoformat(),
        "age": age,
        "age_minutes": round(age / 60),
        "stale": outcome.stale,
    }
    if entry.coin_count is not None:
        meta["coin_count"] = entry.coin_count
    if entry.entry_count is not None:
        meta["entry_count"] = entry.entry_count
    if entry.raw_entries is not None:
        meta["raw_entries"] = entry.raw_entries
    if entry.note:
        meta["note"] = entry.note
    return meta


def build_dataset_envelope(outcome: RefreshOutcome, coin: Optional[str] = None) -> Dict[str, Any]:
    """Envelope for a single-key dataset, optionally narrowed to one coin."""
    if outcome.entry is None:
        envelope: Dict[str, Any] = {
            "success": False,
            "source": outcome.source.value,
            "data": None,
            "meta": None,
        }
        if outcome.error is not None:
            envelope.update(_error_fields(outcome.error, cold=True))
        return envelope

    meta = build_meta(outcome)
    data = outcome.entry.data
    if coin is not None:
        symbol = coin.upper()
        if not isinstance(data, dict) or symbol not in data:
            envelope = {"success": False, "source": outcome.source.value, "data": None, "meta": meta}
            envelope.update(UnsupportedCoin(symbol).to_dict())
            return envelope
        data = data[symbol]

    envelope = {
        "success": True,
        "source": outcome.source.value,
        "data": data,
        "meta": meta,
    }
    if outcome.error is not None:
        envelope.update(_error_fields(outcome.error))
    return envelope


def build_coin_result(symbol: str, outcome: RefreshOutcome) -> Dict[str, Any]:
    """Per-coin entry of a batch: stats plus freshness flags, or an error."""
    if outcome.entry is None:
        result: Dict[str, Any] = {"coin": symbol}
        if outcome.error is not None:
            result.update(outcome.error.to_dict())
        return result

    result = dict(outcome.entry.data)
    result["from_cache"] = outcome.from_cache
    result["stale"] = outcome.stale
    result["age_seconds"] = int(outcome.age_seconds or 0)
    if outcome.error is not None:
        result.update(outcome.error.to_dict())
    return result


def build_batch_envelope(
    outcomes: Mapping[str, RefreshOutcome],
    prices: Optional[RefreshOutcome] = None,
    cache_hours: Optional[float] = None,
    single: Optional[str] = None,
) -> Dict[str, Any]:
    """Envelope for a multi-coin request.

    ``single`` selects one coin's result as ``data`` instead of the map.
    """
    results = {symbol: build_coin_result(symbol, outcome) for symbol, outcome in outcomes.items()}
    served = [o for o in outcomes.values() if o.entry is not None]

    meta: Dict[str, Any] = {
        "fetched_at": min(o.entry.fetched_at for o in served).isoformat() if served else None,
        "age": max(int(o.age_seconds or 0) for o in served) if served else None,
        "stale": any(o.stale for o in served),
        "coin_count": len(served),
        "requested": len(outcomes),
        "errors": sum(1 for o in outcomes.values() if o.error is not None),
    }

    price_data: Dict[str, Any] = {}
    if prices is not None and prices.entry is not None:
        price_data = prices.entry.data
        meta["prices_stale"] = prices.stale

    return {
        "success": True,
        "cache_hours": cache_hours,
        "prices": price_data,
        "data": results.get(single) if single is not None else results,
        "meta": meta,
    }
