"""Cache diagnostics router.

Lists what is stored per key, how old it is and whether its last refresh
failed, plus the recent ingestion runs.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..dependencies import get_container
from ..services.container import ServiceContainer
from ..services.errors import UnknownDataset

router = APIRouter()


class CacheKeyStatus(BaseModel):
    """Status of one cache key."""
    key: str
    tier: str
    fetched_at: Optional[str] = None
    age_seconds: Optional[int] = None
    coin_count: Optional[int] = None
    entry_count: Optional[int] = None
    last_error: Optional[str] = None


class CacheStatusResponse(BaseModel):
    keys: List[CacheKeyStatus]
    healthy: bool


@router.get("/cache/status", response_model=CacheStatusResponse)
async def get_cache_status(container: ServiceContainer = Depends(get_container)):
    """Freshness tier and last error for every known key."""
    orchestrator = container.orchestrator
    failing = orchestrator.failing_keys()
    now = orchestrator.clock()

    statuses = []
    for key in sorted(set(await container.store.keys()) | set(failing)):
        entry = await container.store.get(key)
        age = entry.age_seconds(now) if entry is not None else None
        try:
            tier = container.policy_for_key(key).classify(age).value
        except UnknownDataset:
            tier = "unknown"
        statuses.append(CacheKeyStatus(
            key=key,
            tier=tier,
            fetched_at=entry.fetched_at.isoformat() if entry is not None else None,
            age_seconds=int(max(age, 0)) if age is not None else None,
            coin_count=entry.coin_count if entry is not None else None,
            entry_count=entry.entry_count if entry is not None else None,
            last_error=failing.get(key),
        ))

    return CacheStatusResponse(keys=statuses, healthy=not failing)


@router.get("/cache/runs")
async def get_ingestion_runs(
    limit: int = Query(20, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, str]]:
    """Most recent ingestion runs, newest last."""
    run_log = container.ingestion.run_log
    if run_log is None:
        return []
    return run_log.read_runs(limit=limit)
