"""Periodic model warmup so the first user request does not pay the load cost."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from rag_orchestrator.application.ports import InferencePort, TelemetryPort
from rag_orchestrator.domain.errors import DomainError

logger = logging.getLogger(__name__)


class WarmupScheduler:
    """
    Probes every configured model once at ``start()`` and then every
    ``interval_s`` seconds. Probe failures are logged and never propagate.
    """

    def __init__(
        self,
        inference: InferencePort,
        models: Sequence[str],
        interval_s: float = 900.0,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._inference = inference
        self._models = tuple(dict.fromkeys(m for m in models if m))
        self._interval_s = interval_s
        self._telemetry = telemetry
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    async def run_once(self) -> dict[str, bool]:
        """Probe each model in turn; returns model → success."""
        outcome: dict[str, bool] = {}
        for model in self._models:
            try:
                await self._inference.probe(model)
            except DomainError as ex:
                logger.warning("warmup probe for %s failed: %s", model, ex)
                outcome[model] = False
            else:
                logger.info("warmup probe for %s succeeded", model)
                outcome[model] = True
            if self._telemetry is not None:
                status = "success" if outcome[model] else "failure"
                self._telemetry.incr("rag.warmup.probes", {"model": model, "status": status})
        return outcome

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:  # a bug in a probe must not kill the schedule
                logger.exception("warmup round failed")
            await asyncio.sleep(self._interval_s)

    def start(self) -> None:
        """Spawn the background task; no-op when already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="model-warmup")
        logger.info(
            "warmup scheduler started for %s every %.0fs", ", ".join(self._models), self._interval_s
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("warmup scheduler stopped")
