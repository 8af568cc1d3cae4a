from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic time in seconds.

    The trial engine and its scheduler read time only through this interface,
    so a virtual clock can drive every phase transition in tests.
    """

    def now(self) -> float: ...


class RealClock:
    def now(self) -> float:
        return time.monotonic()


def to_ms(seconds: float) -> float:
    """Reaction times and exposures are reported in milliseconds."""
    return float(seconds) * 1000.0


def to_s(ms: float) -> float:
    return float(ms) / 1000.0
