"""
Exact-match cache for Taskline (Tier 1).

Stores parsed results keyed by normalised input text.  Bounded by a
fixed capacity with least-recently-used eviction.  Tracks hit/miss
statistics.  Every public method runs inside one short critical
section; no method blocks or suspends while holding the lock.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from taskline.config import get_settings
from taskline.models import ParsedResult

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    """A single cached parse.

    Attributes:
        key: Normalised input text.
        result: The stored parsed result.
        created_at: UTC timestamp when the entry was first stored.
        last_access: UTC timestamp of the latest store or hit.
        hit_count: Number of times this entry has been served.
    """

    key: str
    result: ParsedResult
    created_at: datetime = Field(default_factory=_utcnow)
    last_access: datetime = Field(default_factory=_utcnow)
    hit_count: int = 0


class CacheStats(BaseModel):
    """Aggregate cache statistics.

    Attributes:
        hits: Total cache hit count.
        misses: Total cache miss count.
        hit_rate: Ratio of hits to total lookups (0.0 if no lookups).
        entry_count: Current number of entries in the cache.
        capacity: Maximum number of entries.
        evictions: Entries dropped to stay within capacity.
    """

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    entry_count: int = 0
    capacity: int = 0
    evictions: int = 0


class ExactCache:
    """Bounded in-memory exact-match cache with LRU eviction.

    Entries are kept in an ``OrderedDict`` ordered from least to most
    recently used, so lookup, refresh and eviction are all O(1).

    Args:
        capacity: Maximum number of entries.  Defaults to
            ``cache.capacity`` from settings.

    Raises:
        ValueError: If capacity is less than 1.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        self._capacity = capacity if capacity is not None else get_settings().cache.capacity
        if self._capacity < 1:
            raise ValueError(f"Capacity must be >= 1, got {self._capacity}")
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits: int = 0
        self._misses: int = 0
        self._evictions: int = 0

    def get(self, key: str) -> Optional[ParsedResult]:
        """Look up a cached result and mark it most recently used.

        Args:
            key: Normalised input text.

        Returns:
            The stored ParsedResult on a hit, or ``None`` on a miss.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._refresh(key, entry)
            self._hits += 1
            hit_count = entry.hit_count
            result = entry.result

        logger.debug(
            "Exact cache hit",
            extra={"cache_key": key[:40], "hit_count": hit_count},
        )
        return result

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return an entry without touching recency or statistics."""
        with self._lock:
            return self._store.get(key)

    def put(self, key: str, result: ParsedResult) -> CacheEntry:
        """Store a result, evicting the least-recently-used entry on overflow.

        Storing under an existing key replaces its result, keeps its hit
        count and marks it most recently used.

        Args:
            key: Normalised input text (must not be empty).
            result: The parsed result to store.

        Returns:
            The stored CacheEntry.

        Raises:
            ValueError: If the key is empty.
        """
        if not key:
            raise ValueError("Cache key must not be empty")

        evicted: Optional[str] = None
        with self._lock:
            now = _utcnow()
            existing = self._store.get(key)
            if existing is not None:
                entry = existing.model_copy(update={"result": result, "last_access": now})
                self._store[key] = entry
                self._store.move_to_end(key)
            else:
                entry = CacheEntry(key=key, result=result, created_at=now, last_access=now)
                self._store[key] = entry
                if len(self._store) > self._capacity:
                    evicted, _ = self._store.popitem(last=False)
                    self._evictions += 1

        if evicted is not None:
            logger.debug("Cache entry evicted", extra={"cache_key": evicted[:40]})
        logger.debug("Cache put", extra={"cache_key": key[:40]})
        return entry

    def touch(self, key: str) -> bool:
        """Refresh an entry's recency and hit count without reading it.

        Returns:
            ``True`` if the key was present.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            self._refresh(key, entry)
            return True

    def snapshot(self) -> List[CacheEntry]:
        """Return all entries ordered from most to least recently used."""
        with self._lock:
            return list(reversed(self._store.values()))

    def clear(self) -> int:
        """Remove all entries from the cache.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._store)
            self._store.clear()
        logger.info("Cache cleared", extra={"entries_removed": count})
        return count

    def stats(self) -> CacheStats:
        """Return aggregate cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total > 0 else 0.0,
                entry_count=len(self._store),
                capacity=self._capacity,
                evictions=self._evictions,
            )

    def _refresh(self, key: str, entry: CacheEntry) -> None:
        # Caller holds self._lock.
        entry.last_access = _utcnow()
        entry.hit_count += 1
        self._store.move_to_end(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    @property
    def size(self) -> int:
        """Current number of entries in the cache."""
        return len(self)

    @property
    def capacity(self) -> int:
        """Maximum number of entries."""
        return self._capacity
