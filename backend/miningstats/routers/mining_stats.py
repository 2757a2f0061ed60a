"""Mining statistics router.

Serves per-coin difficulty, network hashrate, block reward and block time,
plus USD prices, through the cache tiers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ..dependencies import get_mining_stats_service
from ..services.envelope import build_batch_envelope
from ..services.mining_stats import MiningStatsService

router = APIRouter()

CACHE_CONTROL = "s-maxage=300, stale-while-revalidate=600"


@router.get("/mining-stats")
async def get_mining_stats(
    response: Response,
    coin: Optional[str] = Query(None, description="Single coin symbol, e.g. BTC"),
    refresh: bool = Query(False, description="Bypass the cache and fetch upstream"),
    cache_hours: Optional[float] = Query(
        None, alias="cacheHours", gt=0, description="Override the fresh window in hours"
    ),
    service: MiningStatsService = Depends(get_mining_stats_service),
):
    """Get mining stats for every supported coin, or one with ``coin``.

    Per-coin failures are reported inside ``data``; the request itself
    succeeds as long as it could be handled.
    """
    report = await service.get_stats(coin=coin, force=refresh, fresh_hours=cache_hours)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return build_batch_envelope(
        report.outcomes,
        prices=report.prices,
        cache_hours=report.policy.fresh_hours,
        single=report.single,
    )
