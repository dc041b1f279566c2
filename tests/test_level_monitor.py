import math

import numpy as np
import pytest

from client.earshot.audio.clock import ManualClock
from client.earshot.audio.level_monitor import (
    EPSILON,
    FLOOR_DB,
    LevelMonitor,
    compute_decibels,
    compute_rms,
)
from client.earshot.audio.types import Edge

TICK_MS = 100
LOUD = np.full(1024, 0.5, dtype=np.float32)
QUIET = np.zeros(1024, dtype=np.float32)


def _run(monitor: LevelMonitor, clock: ManualClock, blocks):
    edges = []
    for block in blocks:
        edges.extend(monitor.observe(block).edges)
        clock.advance(TICK_MS)
    return edges


def test_decibels_of_known_levels():
    assert compute_decibels(np.full(16, 1.0)) == pytest.approx(0.0)
    assert compute_decibels(np.full(16, 0.1)) == pytest.approx(-20.0)
    # int16 blocks are scaled to [-1, 1] first
    assert compute_decibels(np.full(16, 16384, dtype=np.int16)) == pytest.approx(20 * math.log10(0.5))


def test_decibels_bounded_by_floor():
    assert compute_decibels(QUIET) == pytest.approx(FLOOR_DB)
    assert compute_decibels(np.array([], dtype=np.float32)) == pytest.approx(FLOOR_DB)
    assert FLOOR_DB == pytest.approx(20 * math.log10(EPSILON))
    assert math.isfinite(FLOOR_DB)


def test_decibels_monotonic_in_rms():
    amplitudes = [0.0, 1e-6, 1e-4, 0.01, 0.1, 0.5, 1.0]
    levels = [compute_decibels(np.full(64, amp)) for amp in amplitudes]
    assert levels == sorted(levels)
    assert compute_rms(np.array([3.0, -3.0])) == pytest.approx(3.0)


def test_exactly_one_timeout_per_silent_run():
    clock = ManualClock()
    monitor = LevelMonitor(-50.0, 800, clock=clock)
    edges = _run(monitor, clock, [LOUD] + [QUIET] * 40)

    assert edges.count(Edge.SILENCE_STARTED) == 1
    assert edges.count(Edge.SILENCE_TIMED_OUT) == 1
    assert monitor.timed_out
    assert monitor.in_silence


def test_timeout_fires_once_threshold_elapsed():
    clock = ManualClock()
    monitor = LevelMonitor(-50.0, 800, clock=clock)
    monitor.observe(QUIET)  # run starts at 0
    clock.advance(700)
    assert monitor.observe(QUIET).edges == ()
    clock.advance(100)
    assert monitor.observe(QUIET).edges == (Edge.SILENCE_TIMED_OUT,)
    assert monitor.silence_started_at is None


def test_alternating_blocks_alternate_edges():
    clock = ManualClock()
    monitor = LevelMonitor(-50.0, 800, clock=clock)
    edges = _run(monitor, clock, [LOUD, QUIET] * 5)

    assert Edge.SILENCE_TIMED_OUT not in edges
    started = [e for e in edges if e in (Edge.SILENCE_STARTED, Edge.SILENCE_ENDED)]
    for previous, current in zip(started, started[1:]):
        assert previous != current
    assert edges.count(Edge.SPEECH_DETECTED) == edges.count(Edge.SILENCE_ENDED) == 4


def test_speech_after_timeout_ends_spent_run():
    clock = ManualClock()
    monitor = LevelMonitor(-50.0, 800, clock=clock)
    edges = _run(monitor, clock, [QUIET] * 12 + [LOUD] + [QUIET] * 12)

    assert edges == [
        Edge.SILENCE_STARTED,
        Edge.SILENCE_TIMED_OUT,
        Edge.SILENCE_ENDED,
        Edge.SPEECH_DETECTED,
        Edge.SILENCE_STARTED,
        Edge.SILENCE_TIMED_OUT,
    ]


def test_loud_blocks_emit_nothing_and_reset_clears_run():
    clock = ManualClock()
    monitor = LevelMonitor(-50.0, 800, clock=clock)
    assert _run(monitor, clock, [LOUD] * 5) == []

    monitor.observe(QUIET)
    clock.advance(300)
    assert monitor.silence_duration_ms() == pytest.approx(300)
    monitor.reset()
    assert not monitor.in_silence
    assert monitor.silence_duration_ms() == 0.0


def test_reading_reports_threshold_decision():
    clock = ManualClock(start_ms=42)
    monitor = LevelMonitor(-20.0, 500, clock=clock)
    reading = monitor.observe(np.full(32, 0.05))
    assert reading.is_silent
    assert reading.timestamp_ms == 42
    assert reading.db == pytest.approx(20 * math.log10(0.05))


def test_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        LevelMonitor(-50.0, 0)
