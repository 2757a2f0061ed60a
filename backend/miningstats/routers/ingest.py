"""Ingestion trigger router.

Called by an external scheduler (cron) with the shared secret, either in the
``X-Cron-Secret`` header or the ``secret`` query parameter.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..dependencies import get_ingestion_service
from ..services.errors import MiningStatsError, MissingCredential, Unauthorized, UnknownDataset
from ..services.ingestion import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter()


class IngestionResponse(BaseModel):
    """Summary of one successful ingestion run."""
    success: bool = True
    dataset: str
    message: str
    fetched_at: str
    count: int
    coins: List[str] = []
    failed: Dict[str, str] = {}


def _failure(status_code: int, error: MiningStatsError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error.message, "code": error.code},
    )


@router.api_route("/update/{dataset}", methods=["GET", "POST"], response_model=IngestionResponse)
async def trigger_ingestion(
    dataset: str,
    secret: Optional[str] = Query(None),
    x_cron_secret: Optional[str] = Header(None),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Fetch ``dataset`` upstream and overwrite its cache entry."""
    try:
        service.authorize(x_cron_secret or secret)
    except Unauthorized as e:
        logger.warning(f"Rejected ingestion request for {dataset}")
        return _failure(status.HTTP_401_UNAUTHORIZED, e)
    except MissingCredential as e:
        logger.error(f"Ingestion requested but {e.message}")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, e)

    try:
        summary = await service.run(dataset)
    except UnknownDataset as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except MiningStatsError as e:
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, e)

    return IngestionResponse(
        dataset=summary.dataset,
        message=summary.message,
        fetched_at=summary.fetched_at.isoformat(),
        count=summary.count,
        coins=summary.coins,
        failed=summary.failed,
    )
