"""FastAPI dependencies resolving services from the app's container."""

from fastapi import Depends, Request

from .services.container import ServiceContainer
from .services.datasets import DatasetService
from .services.ingestion import IngestionService
from .services.mining_stats import MiningStatsService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_mining_stats_service(container: ServiceContainer = Depends(get_container)) -> MiningStatsService:
    return container.mining_stats


def get_dataset_service(container: ServiceContainer = Depends(get_container)) -> DatasetService:
    return container.datasets


def get_ingestion_service(container: ServiceContainer = Depends(get_container)) -> IngestionService:
    return container.ingestion
