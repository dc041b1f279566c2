"""Per-tick loudness estimation and silence edge detection."""

from __future__ import annotations

import logging
import math
import sys
from typing import Optional

import numpy as np

from .clock import Clock, MonotonicClock
from .types import AudioBlock, Edge, LevelReading

LOGGER = logging.getLogger("earshot.monitor")

EPSILON = sys.float_info.min
FLOOR_DB = 20.0 * math.log10(EPSILON)

# Roughly one debug line per second at 60 ticks/s.
_LEVEL_LOG_EVERY = 60


def compute_rms(block: AudioBlock) -> float:
    data = np.asarray(block)
    if data.size == 0:
        return 0.0
    if data.dtype.kind in "iu":
        data = data.astype(np.float64) / 32768.0
    else:
        data = data.astype(np.float64, copy=False)
    return float(np.sqrt(np.mean(np.square(data))))


def compute_decibels(block: AudioBlock) -> float:
    """Return ``20 * log10(max(rms, EPSILON))``; never below ``FLOOR_DB``."""
    rms = compute_rms(block)
    if not math.isfinite(rms):
        rms = 0.0
    return 20.0 * math.log10(max(rms, EPSILON))


class LevelMonitor:
    """Classifies blocks as speech or silence and raises one-shot edges.

    The silence run lives only here. ``SILENCE_TIMED_OUT`` fires once per
    run and clears the run start; the run stays spent (no further edges)
    until a loud block ends it with ``SILENCE_ENDED`` + ``SPEECH_DETECTED``.
    """

    def __init__(
        self,
        silence_threshold_db: float = -50.0,
        silence_timeout_ms: float = 800.0,
        *,
        clock: Clock | None = None,
    ) -> None:
        if silence_timeout_ms <= 0:
            raise ValueError("silence_timeout_ms must be positive")
        self.silence_threshold_db = float(silence_threshold_db)
        self.silence_timeout_ms = float(silence_timeout_ms)
        self.clock: Clock = clock or MonotonicClock()
        self._silence_start: Optional[float] = None
        self._timed_out = False
        self.ticks = 0

    @property
    def silence_started_at(self) -> Optional[float]:
        return self._silence_start

    @property
    def in_silence(self) -> bool:
        return self._silence_start is not None or self._timed_out

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    def silence_duration_ms(self) -> float:
        if self._silence_start is None:
            return 0.0
        return max(0.0, self.clock.now_ms() - self._silence_start)

    def reset(self) -> None:
        self._silence_start = None
        self._timed_out = False

    def observe(self, block: AudioBlock) -> LevelReading:
        now = self.clock.now_ms()
        db = compute_decibels(block)
        is_silent = db < self.silence_threshold_db
        self.ticks += 1
        if self.ticks % _LEVEL_LOG_EVERY == 0:
            LOGGER.debug("Current audio level: %d dB", round(db))

        if is_silent:
            edges = self._on_silence(now)
        else:
            edges = self._on_sound(db)
        return LevelReading(db=db, is_silent=is_silent, timestamp_ms=now, edges=edges)

    def _on_silence(self, now: float) -> tuple[Edge, ...]:
        if self._timed_out:
            return ()
        if self._silence_start is None:
            self._silence_start = now
            LOGGER.debug("Silence started")
            return (Edge.SILENCE_STARTED,)
        elapsed = now - self._silence_start
        if elapsed >= self.silence_timeout_ms:
            LOGGER.debug("Silence timeout reached after %.0fms", elapsed)
            self._silence_start = None
            self._timed_out = True
            return (Edge.SILENCE_TIMED_OUT,)
        if elapsed >= self.silence_timeout_ms / 2:
            LOGGER.debug("Silence continues: %.0fms / %.0fms", elapsed, self.silence_timeout_ms)
        return ()

    def _on_sound(self, db: float) -> tuple[Edge, ...]:
        if not self.in_silence:
            return ()
        LOGGER.debug("Speech detected after silence, level: %d dB", round(db))
        self.reset()
        return (Edge.SILENCE_ENDED, Edge.SPEECH_DETECTED)


__all__ = ["EPSILON", "FLOOR_DB", "LevelMonitor", "compute_decibels", "compute_rms"]
