"""Durable cache row model."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime

from .database import Base


class CacheRecord(Base):
    """Latest snapshot for one cache key, serialized as JSON."""
    __tablename__ = "cache_entries"

    key = Column(String(64), primary_key=True)  # coins, prices, mining-stats.BTC, ...
    payload = Column(Text, nullable=False)

    # Copies of payload fields for diagnostics queries
    fetched_at = Column(DateTime, nullable=False)
    coin_count = Column(Integer, nullable=True)
    entry_count = Column(Integer, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CacheRecord(key={self.key}, fetched_at={self.fetched_at})>"
