"""
Time-bounded caches for DNS and WHOIS lookups

All caches share one async interface:
    await cache.get(key) -> value or None
    await cache.get_entry(key) -> (value, remaining lifetime) or None
    await cache.set(key, value, ttl=None)
so the in-memory tier and the stored tier can be swapped or stacked.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Entry = Tuple[Any, timedelta]


class MemoryCache:
    """
    Process-wide dict of key -> (value, stored_at, ttl)

    Expired entries are dropped when read, and all of them are swept on
    ``set`` at most once per ``check_period``.
    """

    def __init__(
        self,
        default_ttl: timedelta,
        clock: Clock = datetime.utcnow,
        name: str = "memory",
        check_period: timedelta = timedelta(seconds=120)
    ):
        self.default_ttl = default_ttl
        self.clock = clock
        self.name = name
        self.check_period = check_period
        self._entries: Dict[str, Tuple[Any, datetime, timedelta]] = {}
        self._last_sweep = clock()

    async def get_entry(self, key: str) -> Optional[Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at, ttl = entry
        remaining = ttl - (self.clock() - stored_at)
        if remaining > timedelta(0):
            return value, remaining
        # Expired; another writer may have replaced it already, which is fine
        self._entries.pop(key, None)
        return None

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        now = self.clock()
        if now - self._last_sweep >= self.check_period:
            self.sweep(now)
        self._entries[key] = (value, now, ttl or self.default_ttl)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop every expired entry; returns how many were dropped"""
        now = now or self.clock()
        expired = [k for k, (_, stored_at, ttl) in self._entries.items() if now - stored_at >= ttl]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"{self.name} cache swept {len(expired)} expired entries")
        return len(expired)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class StoreCache:
    """
    Cache persisted in one of the store's keyed cache tables

    Freshness is checked on read: an entry is served only while
    ``now - created_at < ttl``.
    """

    def __init__(self, store, table: str, default_ttl: timedelta, clock: Clock = datetime.utcnow):
        self.store = store
        self.table = table
        self.default_ttl = default_ttl
        self.clock = clock
        self.name = table

    async def get_entry(self, key: str) -> Optional[Entry]:
        try:
            entry = await self.store.get_cache_entry(self.table, key)
        except SQLAlchemyError as e:
            logger.warning(f"{self.table} cache read failed for {key}: {e}")
            return None
        if entry is None:
            return None
        value, created_at, ttl_seconds = entry
        remaining = timedelta(seconds=ttl_seconds) - (self.clock() - created_at)
        if remaining > timedelta(0):
            return value, remaining
        return None

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        ttl = ttl or self.default_ttl
        try:
            await self.store.put_cache_entry(
                self.table, key, value, created_at=self.clock(), ttl_seconds=int(ttl.total_seconds())
            )
        except SQLAlchemyError as e:
            logger.warning(f"{self.table} cache write failed for {key}: {e}")


class TieredCache:
    """
    Ordered stack of caches, fastest first

    A hit in a slower tier is copied into the faster ones for no longer
    than the entry has left to live there. ``set`` writes every tier with
    its own default TTL unless one is given.
    """

    def __init__(self, *tiers):
        self.tiers = tiers

    async def get_entry(self, key: str) -> Optional[Entry]:
        for index, tier in enumerate(self.tiers):
            entry = await tier.get_entry(key)
            if entry is None:
                continue
            value, remaining = entry
            for faster in self.tiers[:index]:
                await faster.set(key, value, min(faster.default_ttl, remaining))
            return entry
        return None

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        for tier in self.tiers:
            await tier.set(key, value, ttl)
