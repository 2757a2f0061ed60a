"""Dataset router: MinerStat coins, pools, hardware and coin prices."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ..dependencies import get_dataset_service
from ..services.datasets import DatasetService
from ..services.envelope import build_dataset_envelope
from .mining_stats import CACHE_CONTROL

router = APIRouter()


async def _serve(
    service: DatasetService,
    response: Response,
    name: str,
    refresh: bool,
    cache_hours: Optional[float],
    coin: Optional[str] = None,
):
    outcome = await service.serve(name, force=refresh, fresh_hours=cache_hours)
    if outcome.entry is not None:
        response.headers["Cache-Control"] = CACHE_CONTROL
    return build_dataset_envelope(outcome, coin=coin or None)


@router.get("/coins")
async def get_coins(
    response: Response,
    coin: Optional[str] = Query(None, description="Return a single coin's entry"),
    refresh: bool = Query(False),
    cache_hours: Optional[float] = Query(None, alias="cacheHours", gt=0),
    service: DatasetService = Depends(get_dataset_service),
):
    """Normalized MinerStat coin catalogue keyed by symbol."""
    return await _serve(service, response, "coins", refresh, cache_hours, coin=coin)


@router.get("/pools")
async def get_pools(
    response: Response,
    refresh: bool = Query(False),
    cache_hours: Optional[float] = Query(None, alias="cacheHours", gt=0),
    service: DatasetService = Depends(get_dataset_service),
):
    return await _serve(service, response, "pools", refresh, cache_hours)


@router.get("/hardware")
async def get_hardware(
    response: Response,
    refresh: bool = Query(False),
    cache_hours: Optional[float] = Query(None, alias="cacheHours", gt=0),
    service: DatasetService = Depends(get_dataset_service),
):
    return await _serve(service, response, "hardware", refresh, cache_hours)


@router.get("/prices")
async def get_prices(
    response: Response,
    refresh: bool = Query(False),
    service: DatasetService = Depends(get_dataset_service),
):
    """USD prices for the supported coins."""
    return await _serve(service, response, "prices", refresh, None)
