"""Age-based freshness tiers for cached entries."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FreshnessTier(str, Enum):
    """Where a cached entry sits relative to the configured boundaries."""
    NO_CACHE = "no_cache"
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True)
class FreshnessPolicy:
    """Tier boundaries for one cache key, in seconds.

    ``age < fresh_seconds`` is FRESH, ``age < expired_seconds`` is STALE and
    anything older is EXPIRED. An age exactly on a boundary therefore falls
    into the older tier.
    """
    fresh_seconds: float
    expired_seconds: float

    def __post_init__(self):
        if self.fresh_seconds <= 0:
            raise ValueError("fresh_seconds must be positive")
        if self.expired_seconds < self.fresh_seconds:
            raise ValueError("expired_seconds must not be below fresh_seconds")

    @classmethod
    def from_hours(cls, fresh_hours: float, expired_hours: float) -> "FreshnessPolicy":
        return cls(fresh_seconds=fresh_hours * 3600, expired_seconds=expired_hours * 3600)

    @property
    def fresh_hours(self) -> float:
        return self.fresh_seconds / 3600

    def with_fresh_hours(self, fresh_hours: Optional[float]) -> "FreshnessPolicy":
        """Per-request override of the fresh boundary (``cacheHours``)."""
        if fresh_hours is None:
            return self
        fresh = fresh_hours * 3600
        return FreshnessPolicy(fresh_seconds=fresh, expired_seconds=max(self.expired_seconds, fresh))

    def classify(self, age_seconds: Optional[float]) -> FreshnessTier:
        """Classify an entry age; ``None`` means there is no entry."""
        if age_seconds is None:
            return FreshnessTier.NO_CACHE
        # Clock skew can produce a small negative age
        age = max(age_seconds, 0.0)
        if age < self.fresh_seconds:
            return FreshnessTier.FRESH
        if age < self.expired_seconds:
            return FreshnessTier.STALE
        return FreshnessTier.EXPIRED
