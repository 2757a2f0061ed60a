"""Mining Stats FastAPI Application.

Serves cached mining statistics and MinerStat datasets, with a
cron-triggered ingestion endpoint that keeps the cache warm.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import cache_status, datasets, health, ingest, mining_stats
from .services.config import ConfigService, ConfigValidationException
from .services.container import build_container
from .services.logging_service import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: Validate configuration
    config_service = ConfigService()
    try:
        config_service.load_and_validate()
    except ConfigValidationException as e:
        setup_logging()
        logger.critical(f"{e}")
        logger.critical("Server cannot start with invalid configuration.")
        sys.exit(1)

    settings = config_service.settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Configuration validated successfully")

    container = await build_container(settings)
    app.state.container = container
    logger.info(
        f"{settings.service_name} {settings.version} ready; "
        f"{len(container.mining_stats.supported_coins())} coins, {settings.storage_backend} cache"
    )

    yield

    logger.info("Initiating graceful shutdown...")
    await container.close()
    logger.info("Graceful shutdown complete")


app = FastAPI(
    title="Mining Stats API",
    description="Cached mining statistics for proof-of-work coins",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(mining_stats.router, prefix="/api", tags=["Mining Stats"])
app.include_router(datasets.router, prefix="/api", tags=["Datasets"])
app.include_router(ingest.router, prefix="/api", tags=["Ingestion"])
app.include_router(cache_status.router, prefix="/api", tags=["Cache"])


@app.get("/")
async def root():
    """Root endpoint redirect to docs."""
    return {"message": "Mining Stats API", "docs": "/docs"}
