"""Cache-or-fetch policy shared by every cached key.

Per key the orchestrator moves through NO_CACHE -> FRESH -> STALE -> EXPIRED
as the entry ages:

- no entry: fetch; on failure report the error, never invent data
- FRESH: serve the entry, upstream is not contacted
- STALE: serve the entry flagged stale, optionally refresh in the background
- EXPIRED: fetch first; on failure serve the expired entry with the error
- force: always fetch; on failure fall back to whatever entry exists

A successful fetch replaces the whole entry. A failed fetch leaves the
stored entry untouched.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set

from .cache_store import CacheEntry, CacheStore, utcnow
from .errors import MiningStatsError, UpstreamError
from .freshness import FreshnessPolicy, FreshnessTier

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[CacheEntry]]


class ServeSource(str, Enum):
    """How the served data was obtained."""
    CACHE = "cache"
    CACHE_STALE = "cache_stale"
    CACHE_EXPIRED = "cache_expired"
    FRESH_FETCH = "fresh_fetch"
    NONE = "none"


@dataclass
class RefreshOutcome:
    """Result for one key: data (maybe), how it was served, and any error."""
    key: str
    entry: Optional[CacheEntry]
    source: ServeSource
    tier: FreshnessTier
    age_seconds: Optional[float] = None
    error: Optional[MiningStatsError] = None

    @classmethod
    def failed(cls, key: str, error: MiningStatsError) -> "RefreshOutcome":
        return cls(key=key, entry=None, source=ServeSource.NONE, tier=FreshnessTier.NO_CACHE, error=error)

    @property
    def ok(self) -> bool:
        return self.entry is not None

    @property
    def stale(self) -> bool:
        return self.source in (ServeSource.CACHE_STALE, ServeSource.CACHE_EXPIRED)

    @property
    def from_cache(self) -> bool:
        return self.source in (ServeSource.CACHE, ServeSource.CACHE_STALE, ServeSource.CACHE_EXPIRED)


class RefreshOrchestrator:
    """Decides per request whether to serve cache or go upstream."""

    def __init__(
        self,
        store: CacheStore,
        clock: Callable[[], datetime] = utcnow,
        background_refresh: bool = False,
    ):
        self.store = store
        self.clock = clock
        self.background_refresh = background_refresh
        self._errors: Dict[str, str] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    def last_error(self, key: str) -> Optional[str]:
        return self._errors.get(key)

    def failing_keys(self) -> Dict[str, str]:
        """Keys whose most recent refresh failed, with the error message."""
        return dict(self._errors)

    async def refresh(self, key: str, fetch: Fetcher) -> CacheEntry:
        """Fetch unconditionally and store the result.

        Raises:
            MiningStatsError: the fetch failed; the stored entry is unchanged
        """
        try:
            entry = await fetch()
        except MiningStatsError as e:
            self._errors[key] = e.message
            if isinstance(e, UpstreamError):
                logger.error(f"Refresh of {key} failed: {e.message}")
            else:
                logger.warning(f"Refresh of {key} not possible: {e.message}")
            raise

        await self.store.put(key, entry)
        self._errors.pop(key, None)
        logger.info(f"Cache entry {key} refreshed (fetched_at={entry.fetched_at.isoformat()})")
        return entry

    async def resolve(
        self,
        key: str,
        fetch: Fetcher,
        policy: FreshnessPolicy,
        force: bool = False,
    ) -> RefreshOutcome:
        """Serve ``key`` according to its freshness tier."""
        entry = await self.store.get(key)
        age = entry.age_seconds(self.clock()) if entry is not None else None
        tier = policy.classify(age)

        if not force:
            if tier is FreshnessTier.FRESH:
                return RefreshOutcome(key, entry, ServeSource.CACHE, tier, age)
            if tier is FreshnessTier.STALE:
                if self.background_refresh:
                    self._schedule(key, fetch)
                return RefreshOutcome(key, entry, ServeSource.CACHE_STALE, tier, age)

        try:
            fresh = await self.refresh(key, fetch)
        except MiningStatsError as e:
            if entry is None:
                return RefreshOutcome.failed(key, e)
            source = ServeSource.CACHE_EXPIRED if tier is FreshnessTier.EXPIRED else ServeSource.CACHE_STALE
            logger.warning(f"Serving {tier.value} cache for {key} after failed refresh")
            return RefreshOutcome(key, entry, source, tier, age, error=e)

        fresh_age = max(fresh.age_seconds(self.clock()), 0.0)
        return RefreshOutcome(key, fresh, ServeSource.FRESH_FETCH, FreshnessTier.FRESH, fresh_age)

    def _schedule(self, key: str, fetch: Fetcher) -> None:
        """Start an out-of-band refresh unless one is already running."""
        running = self._inflight.get(key)
        if running is not None and not running.done():
            return

        task = asyncio.create_task(self._background_refresh(key, fetch))
        self._inflight[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Background refresh scheduled for {key}")

    async def _background_refresh(self, key: str, fetch: Fetcher) -> None:
        try:
            await self.refresh(key, fetch)
        except MiningStatsError:
            # Already recorded by refresh(); the stale entry keeps being served
            pass
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    async def drain(self) -> None:
        """Wait for background refreshes to finish."""
        if not self._tasks:
            return
        results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Background refresh crashed: {result!r}")
