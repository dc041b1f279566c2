"""Millisecond clocks injected into the monitor and controller."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> float: ...


class MonotonicClock:
    def now_ms(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock:
    """Clock that only moves when told to; used for replay and tests."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, delta_ms: float) -> float:
        if delta_ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += float(delta_ms)
        return self._now

    def set(self, value_ms: float) -> None:
        self._now = float(value_ms)


__all__ = ["Clock", "ManualClock", "MonotonicClock"]
