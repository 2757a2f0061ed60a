"""Whole-response datasets (MinerStat catalogues, prices)."""

import logging
from typing import Dict, List, Mapping, Optional

from .cache_store import CacheEntry
from .errors import UnknownDataset
from .freshness import FreshnessPolicy
from .refresh import RefreshOrchestrator, RefreshOutcome
from .sources import DatasetSource

logger = logging.getLogger(__name__)


class DatasetService:
    """Serves and ingests datasets; each dataset is cached under its name."""

    def __init__(
        self,
        sources: Mapping[str, DatasetSource],
        orchestrator: RefreshOrchestrator,
        policies: Mapping[str, FreshnessPolicy],
    ):
        missing = set(sources) - set(policies)
        if missing:
            raise ValueError(f"No freshness policy for datasets: {sorted(missing)}")
        self.sources: Dict[str, DatasetSource] = dict(sources)
        self.orchestrator = orchestrator
        self.policies: Dict[str, FreshnessPolicy] = dict(policies)

    def names(self) -> List[str]:
        return list(self.sources)

    def _source(self, name: str) -> DatasetSource:
        source = self.sources.get(name)
        if source is None:
            raise UnknownDataset(name)
        return source

    def policy(self, name: str) -> FreshnessPolicy:
        self._source(name)
        return self.policies[name]

    async def serve(
        self,
        name: str,
        force: bool = False,
        fresh_hours: Optional[float] = None,
    ) -> RefreshOutcome:
        """Cache-first read with cold-start self-healing."""
        source = self._source(name)
        policy = self.policies[name].with_fresh_hours(fresh_hours)
        outcome = await self.orchestrator.resolve(name, source.fetch, policy, force=force)
        logger.debug(f"Served {name} as {outcome.source.value}")
        return outcome

    async def ingest(self, name: str) -> CacheEntry:
        """Unconditional fetch-and-store; errors propagate to the caller."""
        source = self._source(name)
        return await self.orchestrator.refresh(name, source.fetch)
