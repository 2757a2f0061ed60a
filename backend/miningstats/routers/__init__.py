# API Routers

from . import cache_status, datasets, health, ingest, mining_stats

__all__ = ["cache_status", "datasets", "health", "ingest", "mining_stats"]
