"""Cache store backends.

Three interchangeable stores keep the latest good snapshot per key:

- MemoryCacheStore: process-local dict, lost on restart.
- FileCacheStore: one JSON file per key, replaced atomically.
- DatabaseCacheStore: one row per key via SQLAlchemy (async).

Writes always replace a whole entry; a failed fetch never reaches the store,
so the previous entry survives intact.
"""

import asyncio
import contextlib
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models.cache_entry import CacheRecord

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp, accepting a trailing ``Z``."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise ValueError(f"Invalid cache key: {key!r}")
    return key


@dataclass
class CacheEntry:
    """Latest successful snapshot for one key, as persisted."""
    data: Any
    fetched_at: datetime
    coin_count: Optional[int] = None
    entry_count: Optional[int] = None
    raw_entries: Optional[int] = None
    source: Optional[str] = None
    note: Optional[str] = None

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.fetched_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "data": self.data,
            "fetched_at": self.fetched_at.isoformat(),
        }
        for name in ("coin_count", "entry_count", "raw_entries", "source", "note"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CacheEntry":
        if not isinstance(payload, dict) or "data" not in payload or "fetched_at" not in payload:
            raise ValueError("Cache payload requires 'data' and 'fetched_at'")
        if not isinstance(payload["fetched_at"], str):
            raise ValueError("'fetched_at' must be an ISO timestamp string")
        return cls(
            data=payload["data"],
            fetched_at=parse_timestamp(payload["fetched_at"]),
            coin_count=payload.get("coin_count"),
            entry_count=payload.get("entry_count"),
            raw_entries=payload.get("raw_entries"),
            source=payload.get("source"),
            note=payload.get("note"),
        )

    def dumps(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


class CacheStore(ABC):
    """Keyed store of CacheEntry objects."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` or None."""

    @abstractmethod
    async def put(self, key: str, entry: CacheEntry) -> None:
        """Replace the entry for ``key`` atomically."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """List keys that currently hold an entry."""

    async def age(self, key: str, now: Optional[datetime] = None) -> float:
        """Seconds since the entry was fetched; infinite when absent."""
        entry = await self.get(key)
        if entry is None:
            return float("inf")
        return entry.age_seconds(now)

    async def close(self) -> None:
        return None


class MemoryCacheStore(CacheStore):
    """Process-local store. Best effort only on short-lived workers."""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[validate_key(key)] = entry

    async def keys(self) -> List[str]:
        return sorted(self._entries)


class FileCacheStore(CacheStore):
    """One ``<key>.json`` file per key inside ``cache_dir``.

    Disk access runs in worker threads via ``asyncio.to_thread``.
    """

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{validate_key(key)}.json"

    async def get(self, key: str) -> Optional[CacheEntry]:
        path = self.path_for(key)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Cache read error for {key}: {e}")
            return None

        try:
            return CacheEntry.from_dict(json.loads(raw))
        except ValueError as e:
            logger.error(f"Cache file {path} is unreadable, treating as absent: {e}")
            return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        path = self.path_for(key)
        await asyncio.to_thread(self._write, key, path, entry.dumps())
        logger.debug(f"Cache file written: {path}")

    def _write(self, key: str, path: Path, text: str) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        # Write beside the target so os.replace stays on one filesystem
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise

    async def keys(self) -> List[str]:
        return await asyncio.to_thread(self._list_keys)

    def _list_keys(self) -> List[str]:
        if not self.cache_dir.exists():
            return []
        return sorted(p.stem for p in self.cache_dir.glob("*.json") if not p.name.startswith("."))


class DatabaseCacheStore(CacheStore):
    """Entries stored as serialized JSON rows in the ``cache_entries`` table."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._session_maker() as session:
            record = await session.get(CacheRecord, key)
            if record is None:
                return None
            try:
                return CacheEntry.from_dict(json.loads(record.payload))
            except ValueError as e:
                logger.error(f"Cache row {key} is unreadable, treating as absent: {e}")
                return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        record = CacheRecord(
            key=validate_key(key),
            payload=entry.dumps(),
            fetched_at=entry.fetched_at.astimezone(timezone.utc).replace(tzinfo=None),
            coin_count=entry.coin_count,
            entry_count=entry.entry_count,
        )
        async with self._session_maker() as session:
            async with session.begin():
                await session.merge(record)

    async def keys(self) -> List[str]:
        async with self._session_maker() as session:
            result = await session.execute(select(CacheRecord.key).order_by(CacheRecord.key))
            return list(result.scalars().all())
