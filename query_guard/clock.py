"""Time sources for the query guard."""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in milliseconds."""

    def now_ms(self) -> float:
        ...


class SystemClock:
    """Wall clock in epoch milliseconds."""

    def now_ms(self) -> float:
        return time.time() * 1000


class ManualClock:
    """Clock that only moves when told to. Used for tests and simulations."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, ms: float) -> None:
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += ms

    def set(self, ms: float) -> None:
        self._now = float(ms)
