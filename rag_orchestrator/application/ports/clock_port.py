from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime


class ClockPort(ABC):
    """Wall clock for turn timestamps and a monotonic clock for timings."""

    @abstractmethod
    def now(self) -> datetime:
        """Return current UTC datetime."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds from an arbitrary origin; only differences are meaningful."""
        ...
