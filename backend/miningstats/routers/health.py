"""Health check router."""

from fastapi import APIRouter, Depends

from ..dependencies import get_container
from ..services.container import ServiceContainer

router = APIRouter()


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)):
    """Health check endpoint."""
    settings = container.settings
    return {
        "status": "ok",
        "service": settings.service_name,
        "version": settings.version,
        "storage": settings.storage_backend,
        "coins": container.mining_stats.supported_coins(),
    }
