"""Ingestion trigger: authenticated, unconditional fetch-and-store runs.

Called by an external scheduler to keep the cache warm. Unlike the serving
path, failures here propagate so the scheduler sees a 5xx and an operator
notices.
"""

import hmac
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .cache_store import utcnow
from .datasets import DatasetService
from .errors import MiningStatsError, MissingCredential, Unauthorized, UnknownDataset, UpstreamError
from .logging_service import IngestionLogEntry, IngestionLogService
from .mining_stats import MiningStatsService

logger = logging.getLogger(__name__)

SECRET_CREDENTIAL = "CRON_SECRET"
MINING_STATS_DATASET = "mining-stats"


@dataclass
class IngestionSummary:
    """What one successful run stored."""
    dataset: str
    fetched_at: datetime
    count: int
    coins: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    raw_entries: Optional[int] = None

    @property
    def message(self) -> str:
        if self.dataset == MINING_STATS_DATASET:
            text = f"Refreshed {self.count} coins"
            if self.failed:
                text += f", {len(self.failed)} failed"
            return text
        if self.raw_entries is not None:
            return f"Cached {self.count} {self.dataset} from {self.raw_entries} entries"
        return f"Cached {self.count} {self.dataset} entries"


class IngestionService:
    """Runs ingestion for a named dataset after checking the shared secret."""

    def __init__(
        self,
        datasets: DatasetService,
        mining_stats: MiningStatsService,
        secret: Optional[str],
        run_log: Optional[IngestionLogService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.datasets = datasets
        self.mining_stats = mining_stats
        self.secret = secret
        self.run_log = run_log
        self.clock = clock

    def names(self) -> List[str]:
        return self.datasets.names() + [MINING_STATS_DATASET]

    def authorize(self, provided: Optional[str]) -> None:
        """Compare the caller's secret with the configured one.

        Raises:
            MissingCredential: no secret configured, nothing can be authorized
            Unauthorized: secret absent or wrong
        """
        if not self.secret:
            raise MissingCredential(SECRET_CREDENTIAL)
        if not provided or not hmac.compare_digest(provided.encode(), self.secret.encode()):
            raise Unauthorized()

    async def run(self, dataset: str) -> IngestionSummary:
        if dataset not in self.names():
            raise UnknownDataset(dataset)

        started = time.monotonic()
        try:
            if dataset == MINING_STATS_DATASET:
                summary = await self._run_mining_stats()
            else:
                summary = await self._run_dataset(dataset)
        except MiningStatsError as e:
            logger.error(f"Ingestion of {dataset} failed: {e.message}")
            self._record(dataset, started, success=False, count=0, error=e.message)
            raise

        logger.info(f"Ingestion of {dataset}: {summary.message}")
        self._record(dataset, started, success=True, count=summary.count)
        return summary

    async def _run_dataset(self, dataset: str) -> IngestionSummary:
        entry = await self.datasets.ingest(dataset)
        count = entry.coin_count if entry.coin_count is not None else (entry.entry_count or 0)
        coins = sorted(entry.data) if entry.coin_count is not None and isinstance(entry.data, dict) else []
        return IngestionSummary(
            dataset=dataset,
            fetched_at=entry.fetched_at,
            count=count,
            coins=coins,
            raw_entries=entry.raw_entries,
        )

    async def _run_mining_stats(self) -> IngestionSummary:
        errors = await self.mining_stats.refresh_all()
        refreshed = sorted(symbol for symbol, error in errors.items() if error is None)
        failed = {symbol: error.message for symbol, error in errors.items() if error is not None}

        # Refreshed coins stay cached, but a missing key fails the run
        missing = [e for e in errors.values() if isinstance(e, MissingCredential)]
        if missing:
            if refreshed:
                logger.warning(f"Refreshed {', '.join(refreshed)} despite missing {missing[0].credential}")
            raise missing[0]

        if not refreshed:
            problems = list(failed.values())
            raise UpstreamError(
                MINING_STATS_DATASET,
                f"All {len(errors)} coins failed to refresh" + (f": {problems[0]}" if problems else ""),
            )

        return IngestionSummary(
            dataset=MINING_STATS_DATASET,
            fetched_at=self.clock(),
            count=len(refreshed),
            coins=refreshed,
            failed=failed,
        )

    def _record(self, dataset: str, started: float, success: bool, count: int, error: Optional[str] = None):
        if self.run_log is None:
            return
        self.run_log.log_run(IngestionLogEntry(
            timestamp=self.clock(),
            dataset=dataset,
            success=success,
            count=count,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=error,
        ))
