"""Tests for the WarmupScheduler."""

import asyncio

import pytest

from rag_orchestrator.application.services.warmup import WarmupScheduler
from rag_orchestrator.domain.errors import InferenceError, InferenceTimeout


class FakeInference:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.probes: list[str] = []
        self.probed = asyncio.Event()

    async def probe(self, model: str) -> None:
        self.probes.append(model)
        self.probed.set()
        if model in self.failing:
            raise InferenceTimeout(f"{model} did not load")


async def test_run_once_reports_each_model() -> None:
    inference = FakeInference(failing={"big-model"})
    scheduler = WarmupScheduler(inference, ["llama3.2", "big-model"])

    outcome = await scheduler.run_once()

    assert outcome == {"llama3.2": True, "big-model": False}
    assert inference.probes == ["llama3.2", "big-model"]


async def test_duplicate_and_empty_models_are_ignored() -> None:
    scheduler = WarmupScheduler(FakeInference(), ["a", "", "a", "b"])
    assert scheduler.models == ("a", "b")


async def test_start_probes_immediately_and_stop_cancels() -> None:
    inference = FakeInference()
    scheduler = WarmupScheduler(inference, ["llama3.2"], interval_s=3600)

    scheduler.start()
    scheduler.start()  # idempotent
    await asyncio.wait_for(inference.probed.wait(), timeout=1.0)
    assert scheduler.running

    await scheduler.stop()

    assert not scheduler.running
    assert inference.probes == ["llama3.2"]


async def test_failures_never_stop_the_schedule() -> None:
    inference = FakeInference(failing={"m"})
    scheduler = WarmupScheduler(inference, ["m"], interval_s=0.01)

    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    assert len(inference.probes) >= 2


async def test_stop_without_start_is_noop() -> None:
    await WarmupScheduler(FakeInference(), ["m"]).stop()


def test_invalid_interval() -> None:
    with pytest.raises(ValueError):
        WarmupScheduler(FakeInference(), ["m"], interval_s=0)


async def test_inference_error_is_reported_as_failure() -> None:
    class Broken(FakeInference):
        async def probe(self, model: str) -> None:
            raise InferenceError("connection refused")

    assert await WarmupScheduler(Broken(), ["m"]).run_once() == {"m": False}
