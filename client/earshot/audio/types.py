"""Dataclasses and enums shared across the segmentation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np

# One tick's worth of PCM samples, normalised float in [-1, 1].
AudioBlock = np.ndarray


class Edge(Enum):
    """One-shot transitions raised by the level monitor."""

    SILENCE_STARTED = "silence_started"
    SILENCE_ENDED = "silence_ended"
    SILENCE_TIMED_OUT = "silence_timed_out"
    SPEECH_DETECTED = "speech_detected"


class SegmentationState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    WAITING_FOR_SPEECH = "waiting_for_speech"


class CutReason(Enum):
    """Why a segment was closed."""

    SILENCE = "silence"
    MAX_LENGTH = "max_length"
    DISPOSE = "dispose"


class RecorderEvent(Enum):
    """Observability channels exposed to the host."""

    LEVEL = "level"
    SEGMENT = "segment"
    ERROR = "error"
    STATE = "state"


@dataclass(slots=True, frozen=True)
class LevelReading:
    """Loudness of a single block plus the edges it triggered."""

    db: float
    is_silent: bool
    timestamp_ms: float
    edges: Tuple[Edge, ...] = ()


@dataclass(slots=True)
class CaptureFrame:
    """Analysis block and the encoded chunk captured on the same tick."""

    samples: AudioBlock
    payload: bytes = b""


@dataclass(slots=True, frozen=True)
class Segment:
    """Closed span of captured audio handed to the transcription sink."""

    index: int
    chunks: Tuple[bytes, ...]
    started_at_ms: float
    ended_at_ms: float
    reason: CutReason
    sample_rate: int = 16000

    @property
    def duration_ms(self) -> float:
        return max(0.0, self.ended_at_ms - self.started_at_ms)

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def payload(self) -> bytes:
        return b"".join(self.chunks)


__all__ = [
    "AudioBlock",
    "CaptureFrame",
    "CutReason",
    "Edge",
    "LevelReading",
    "RecorderEvent",
    "Segment",
    "SegmentationState",
]
