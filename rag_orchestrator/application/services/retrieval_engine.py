"""Cached, retried semantic search over the vector index."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from rag_orchestrator.application.ports import TelemetryPort, VectorIndexPort
from rag_orchestrator.application.services.query_cache import QueryCache
from rag_orchestrator.application.services.retry import Sleep, retry_async
from rag_orchestrator.domain.errors import DimensionMismatch, IndexUnavailable, ValidationError
from rag_orchestrator.domain.models import RetrievalResult, RetrievedSnippet
from rag_orchestrator.domain.services.ranking import mmr, sort_by_distance

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """
    Front door to the vector index for one collection.

    Flow per call:
      1. truncate the query to ``max_query_chars`` (keep the beginning)
      2. cache lookup; a hit returns without touching the index
      3. index query with bounded retries, all under ``deadline_s``
      4. sort by ascending distance, optionally diversify (MMR), cache

    Index failure after retries raises ``IndexUnavailable``; zero matches is a
    normal empty result.
    """

    def __init__(
        self,
        index: VectorIndexPort,
        cache: QueryCache,
        *,
        collection: str,
        default_k: int = 3,
        max_query_chars: int = 2000,
        retry_attempts: int = 3,
        retry_base_delay_s: float = 0.5,
        retry_max_delay_s: float = 5.0,
        deadline_s: float = 20.0,
        mmr_lambda: float = 0.5,
        telemetry: TelemetryPort | None = None,
        sleep: Sleep = asyncio.sleep,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        if max_query_chars <= 0:
            raise ValueError("max_query_chars must be > 0")
        self._index = index
        self._cache = cache
        self._collection = collection
        self._default_k = default_k
        self._max_query_chars = max_query_chars
        self._retry_attempts = retry_attempts
        self._retry_base_delay_s = retry_base_delay_s
        self._retry_max_delay_s = retry_max_delay_s
        self._deadline_s = deadline_s
        self._mmr_lambda = mmr_lambda
        self._telemetry = telemetry
        self._sleep = sleep
        self._timer = timer

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def cache(self) -> QueryCache:
        return self._cache

    def normalize_query(self, query: str) -> str:
        return query.strip()[: self._max_query_chars]

    async def retrieve(
        self,
        query: str,
        k: int | None = None,
        filters: Mapping[str, Any] | None = None,
        *,
        collection: str | None = None,
        diversify: bool = False,
    ) -> RetrievalResult:
        k = self._default_k if k is None else k
        if k <= 0:
            raise ValidationError("k must be > 0")
        text = self.normalize_query(query)
        if not text:
            raise ValidationError("query must not be empty")
        name = collection or self._collection

        started = self._timer()
        generation = self._cache.generation
        key = QueryCache.make_key(
            name, k, [text], {"filters": dict(filters or {}), "diversify": diversify}
        )
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("retrieval cache hit", extra={"collection": name, "k": k})
            self._incr("rag.cache.hits")
            return RetrievalResult(snippets=cached, timing_ms=self._elapsed_ms(started), cached=True)
        self._incr("rag.cache.misses")

        fetch_k = k * 2 if diversify else k
        raw = await self._query_index(name, fetch_k, text, filters, with_vectors=diversify)
        ranked = sort_by_distance(raw)
        if diversify:
            ranked = sort_by_distance(mmr(ranked, k, self._mmr_lambda))
        snippets = tuple(ranked[:k])

        # dropped when a mutation cleared the cache while the index was queried
        self._cache.put(key, snippets, generation=generation)
        timing_ms = self._elapsed_ms(started)
        if self._telemetry is not None:
            self._telemetry.observe(
                "rag.retrieval.latency_ms", timing_ms, {"collection": name, "diversify": diversify}
            )
        return RetrievalResult(snippets=snippets, timing_ms=timing_ms)

    async def _query_index(
        self,
        collection: str,
        k: int,
        text: str,
        filters: Mapping[str, Any] | None,
        *,
        with_vectors: bool,
    ) -> list[RetrievedSnippet]:
        async def _once() -> list[list[RetrievedSnippet]]:
            return await self._index.query(collection, k, [text], filters, with_vectors)

        try:
            async with asyncio.timeout(self._deadline_s):
                results = await retry_async(
                    _once,
                    attempts=self._retry_attempts,
                    base_delay_s=self._retry_base_delay_s,
                    max_delay_s=self._retry_max_delay_s,
                    retry_on=IndexUnavailable,
                    give_up_on=(DimensionMismatch,),
                    label="vector index query",
                    sleep=self._sleep,
                )
        except TimeoutError as ex:
            raise IndexUnavailable(
                f"retrieval exceeded its {self._deadline_s:.1f}s deadline"
            ) from ex
        return results[0] if results else []

    def _elapsed_ms(self, started: float) -> float:
        return (self._timer() - started) * 1000.0

    def _incr(self, name: str) -> None:
        if self._telemetry is not None:
            self._telemetry.incr(name, {"collection": self._collection})
