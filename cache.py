"""
Query Cache - shared read cache for table listings

Keyed by entity name. Identical in-flight loads are joined rather than
raced, and invalidation bumps a generation counter so a load that started
before a write can never be stored as fresh.
"""

import logging
import os
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

QUERY_CACHE_TTL = float(os.getenv("QUERY_CACHE_TTL", "30"))


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    generation: int
    stale: bool = False


class QueryCache:
    def __init__(self, ttl: float = QUERY_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, Tuple[int, Future]] = {}
        self._generations: Dict[str, int] = {}
        self.stats = {"hits": 0, "misses": 0, "joins": 0}

    def _is_fresh(self, key: str, entry: CacheEntry) -> bool:
        if entry.stale or entry.generation != self._generations.get(key, 0):
            return False
        return self._clock() - entry.fetched_at < self.ttl

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.value if entry else None

    def fetch(self, key: str, loader: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(key, entry):
                self.stats["hits"] += 1
                return entry.value
            generation = self._generations.get(key, 0)
            inflight = self._inflight.get(key)
            # Loads started before the latest invalidation are not joined.
            if inflight is not None and inflight[0] == generation:
                self.stats["joins"] += 1
                future = inflight[1]
                owner = False
            else:
                self.stats["misses"] += 1
                future = Future()
                self._inflight[key] = (generation, future)
                owner = True

        if not owner:
            return future.result()

        try:
            value = loader()
        except BaseException as exc:
            self._release(key, future)
            future.set_exception(exc)
            raise

        with self._lock:
            current = self._generations.get(key, 0)
            entry = self._entries.get(key)
            if entry is None or entry.generation <= generation:
                self._entries[key] = CacheEntry(
                    value=value,
                    fetched_at=self._clock(),
                    generation=generation,
                    stale=generation != current,
                )
        self._release(key, future)
        future.set_result(value)
        return value

    def _release(self, key: str, future: Future):
        with self._lock:
            inflight = self._inflight.get(key)
            if inflight is not None and inflight[1] is future:
                del self._inflight[key]

    def invalidate(self, key: str):
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            entry = self._entries.get(key)
            if entry is not None:
                entry.stale = True
        logger.debug("Invalidated cache key %s", key)

    def clear(self):
        with self._lock:
            self._entries.clear()
            for key in list(self._generations):
                self._generations[key] += 1
