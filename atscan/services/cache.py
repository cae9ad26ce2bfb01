"""
Time-bounded in-process caches for reference lookups
"""
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

import cachetools
from pydantic import BaseModel, ConfigDict

from atscan.utils.logging_config import get_logger

DEFAULT_MAX_ENTRIES = 10000


class QueryType(str, Enum):
    SKILL_SEARCH = "skill-search"
    OCCUPATION_SEARCH = "occupation-search"
    VALIDATION = "validation"


def normalize_query(query: str) -> str:
    return " ".join(query.lower().split())


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: Tuple[Any, ...]
    payload: Any
    created_at: float


class _CountingTTLCache(cachetools.TTLCache):
    """cachetools TTLCache that counts the entries it drops"""

    def __init__(self, maxsize: int, ttl: float, timer: Callable[[], float]):
        super().__init__(maxsize, ttl, timer=timer)
        self.expired = 0
        self.overflowed = 0

    def expire(self, time=None):
        dropped = super().expire(time)
        self.expired += len(dropped)
        return dropped

    def popitem(self):
        item = super().popitem()
        self.overflowed += 1
        return item


class TTLCache:
    """
    Thread-safe, size-bounded key/value store whose entries expire ``ttl`` seconds
    after creation.

    Expiry is lazy: expired entries are dropped when the cache is next read or
    written and reported as misses. Nothing is swept in the background. When
    ``maxsize`` is reached the least recently used entry makes room. Concurrent
    writers of the same key resolve last-writer-wins.
    """

    def __init__(self, name: str, ttl: float, maxsize: int = DEFAULT_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic, logger: logging.Logger = None):
        self.name = name
        self.ttl = ttl
        self.maxsize = maxsize
        self._clock = clock
        self._store = _CountingTTLCache(maxsize, ttl, timer=clock)
        self._lock = threading.Lock()
        self.logger = logger or get_logger(__name__)
        self.hits = 0
        self.misses = 0

    @property
    def evictions(self) -> int:
        return self._store.expired + self._store.overflowed

    @staticmethod
    def make_key(query_type: QueryType, query: str, *extra: Hashable) -> Tuple[Hashable, ...]:
        return (query_type.value, normalize_query(query), *extra)

    def get(self, key: Tuple[Hashable, ...]) -> Optional[Any]:
        with self._lock:
            dropped = self._store.expire()
            if dropped:
                self.logger.debug(f"{self.name} cache dropped {len(dropped)} expired entries")
            entry = self._store.get(key)
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
            return entry.payload

    def set(self, key: Tuple[Hashable, ...], payload: Any) -> None:
        with self._lock:
            self._store[key] = CacheEntry(key=key, payload=payload, created_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "name": self.name,
                "ttl_seconds": self.ttl,
                "max_entries": self.maxsize,
                "size": len(self._store),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
            }
