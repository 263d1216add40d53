"""Telemetry port for request, cache, retrieval and warmup metrics."""

from typing import Any, Protocol


class TelemetryPort(Protocol):
    """
    Names used by the services:

    - counters:   rag.requests.total{status}, rag.cache.hits, rag.cache.misses,
                  rag.warmup.probes{status}
    - histograms: rag.retrieval.latency_ms, rag.generation.latency_ms
    """

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        """Increment a counter by one."""
        ...

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        """Record one histogram sample (milliseconds for latencies)."""
        ...
