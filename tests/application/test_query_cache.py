"""Tests for the LRU + TTL query cache."""

import pytest

from rag_orchestrator.application.services.query_cache import QueryCache
from rag_orchestrator.domain.models import RetrievedSnippet


class FakeTimer:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def snippets(*ids: str) -> tuple[RetrievedSnippet, ...]:
    return tuple(RetrievedSnippet.from_distance(i, f"text {i}", {}, 0.1) for i in ids)


class TestKeys:
    def test_key_is_deterministic_and_option_order_insensitive(self) -> None:
        a = QueryCache.make_key("docs", 3, ["q"], {"filters": {"a": 1, "b": 2}, "diversify": False})
        b = QueryCache.make_key("docs", 3, ["q"], {"diversify": False, "filters": {"b": 2, "a": 1}})
        assert a == b

    def test_key_distinguishes_inputs(self) -> None:
        base = QueryCache.make_key("docs", 3, ["q"])
        assert base != QueryCache.make_key("other", 3, ["q"])
        assert base != QueryCache.make_key("docs", 4, ["q"])
        assert base != QueryCache.make_key("docs", 3, ["q2"])
        assert base != QueryCache.make_key("docs", 3, ["q"], {"filters": {"a": 1}})


class TestQueryCache:
    def test_hit_and_miss(self) -> None:
        cache = QueryCache()
        assert cache.get("k") is None
        cache.put("k", snippets("d1"))
        assert cache.get("k") == snippets("d1")
        assert cache.stats()["hit_count"] == 1
        assert cache.stats()["miss_count"] == 1

    def test_expired_entries_are_absent(self) -> None:
        timer = FakeTimer()
        cache = QueryCache(capacity=10, ttl_s=1800, timer=timer)
        cache.put("k", snippets("d1"))

        timer.now = 1799
        assert cache.get("k") is not None
        timer.now = 1801
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_lru_eviction_at_capacity(self) -> None:
        cache = QueryCache(capacity=2)
        cache.put("a", snippets("a"))
        cache.put("b", snippets("b"))
        cache.get("a")  # a becomes most recently used
        cache.put("c", snippets("c"))

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None
        assert len(cache) == 2

    def test_clear(self) -> None:
        cache = QueryCache()
        cache.put("a", snippets("a"))
        cache.clear()
        assert len(cache) == 0
        assert cache.get("a") is None

    def test_put_after_clear_with_stale_generation_is_dropped(self) -> None:
        cache = QueryCache()
        before = cache.generation

        cache.clear()

        assert cache.put("a", snippets("a"), generation=before) is False
        assert cache.get("a") is None
        assert cache.put("a", snippets("a"), generation=cache.generation) is True
        assert cache.get("a") is not None

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            QueryCache(capacity=0)
        with pytest.raises(ValueError):
            QueryCache(ttl_s=0)
