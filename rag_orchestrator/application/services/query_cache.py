"""In-process LRU + TTL cache for retrieval results."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from cachetools import TTLCache

from rag_orchestrator.domain.models import RetrievedSnippet

logger = logging.getLogger(__name__)

RetrievalSnippets = tuple[RetrievedSnippet, ...]


class QueryCache:
    """
    Bounded mapping from a retrieval key to the snippets it produced.

    - capacity:  strict LRU eviction once full
    - ttl_s:     entries older than this are absent on read (purged lazily)
    - timer:     monotonic clock, injectable for tests

    Failures inside the cache are logged and reported as misses; callers never
    see a cache exception.

    Every ``clear`` bumps ``generation``. A writer that read the generation
    before computing its value passes it to ``put``; the write is dropped when
    a clear happened in between, so a result computed before a mutation never
    re-enters the cache.
    """

    def __init__(
        self,
        capacity: int = 100,
        ttl_s: float = 1800.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self._cache: TTLCache[str, RetrievalSnippets] = TTLCache(
            maxsize=capacity, ttl=ttl_s, timer=timer
        )
        self._lock = threading.Lock()
        self._generation = 0
        self.hit_count = 0
        self.miss_count = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @staticmethod
    def make_key(
        collection: str,
        k: int,
        query_texts: Sequence[str],
        options: Mapping[str, Any] | None = None,
    ) -> str:
        """Deterministic key: same inputs, same key; options order is irrelevant."""
        return json.dumps(
            {
                "collection": collection,
                "k": k,
                "queries": list(query_texts),
                "options": dict(options or {}),
            },
            sort_keys=True,
            default=str,
        )

    def get(self, key: str) -> RetrievalSnippets | None:
        try:
            with self._lock:
                value = self._cache.get(key)
                if value is None:
                    self.miss_count += 1
                else:
                    self.hit_count += 1
                return value
        except Exception as ex:  # broken cache degrades to a miss
            logger.warning("query cache read failed, treating as miss: %s", ex)
            return None

    def put(
        self, key: str, value: Sequence[RetrievedSnippet], generation: int | None = None
    ) -> bool:
        """Store ``value``; returns False when the entry was dropped."""
        try:
            with self._lock:
                if generation is not None and generation != self._generation:
                    logger.debug("query cache cleared during computation, entry dropped")
                    return False
                self._cache[key] = tuple(value)
                return True
        except Exception as ex:
            logger.warning("query cache write failed, entry dropped: %s", ex)
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._generation += 1
        logger.debug("query cache cleared")

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self.hit_count + self.miss_count
            return {
                "entries": len(self._cache),
                "capacity": int(self._cache.maxsize),
                "ttl_s": self._cache.ttl,
                "hit_count": self.hit_count,
                "miss_count": self.miss_count,
                "hit_rate": self.hit_count / total if total else 0.0,
            }
