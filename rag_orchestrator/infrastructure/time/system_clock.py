"""System clock adapter: UTC wall time plus a monotonic clock for timings.

For tests, inject a fake ClockPort instead.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from ...application.ports.clock_port import ClockPort


class SystemClock(ClockPort):
    def now(self) -> datetime:  # pragma: no cover - trivial
        return datetime.now(UTC)

    def monotonic(self) -> float:  # pragma: no cover - trivial
        return time.monotonic()
