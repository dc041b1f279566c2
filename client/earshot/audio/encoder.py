"""PCM16 chunk helpers and WAV container output for closed segments."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import soundfile as sf

from .errors import SegmentAssemblyError
from .types import AudioBlock, Segment


def pcm16_bytes(block: AudioBlock) -> bytes:
    data = np.asarray(block)
    if data.ndim > 1:
        data = data.mean(axis=1)
    if data.dtype.kind in "iu":
        return data.astype("<i2", copy=False).tobytes()
    clipped = np.clip(data.astype(np.float32, copy=False), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def decode_pcm16(payload: bytes) -> np.ndarray:
    if len(payload) % 2:
        raise SegmentAssemblyError(f"PCM16 payload has odd length ({len(payload)} bytes)")
    return np.frombuffer(payload, dtype="<i2")


def encode_segment_wav(segment: Segment) -> bytes:
    """Wrap a segment's PCM16 payload in a mono 16-bit WAV container."""
    samples = decode_pcm16(segment.payload)
    if samples.size == 0:
        raise SegmentAssemblyError(f"Segment #{segment.index} has no samples")
    buffer = io.BytesIO()
    sf.write(buffer, samples, segment.sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def write_segment(segment: Segment, directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"segment_{segment.index:04d}_{segment.reason.value}.wav"
    path.write_bytes(encode_segment_wav(segment))
    return path


__all__ = ["decode_pcm16", "encode_segment_wav", "pcm16_bytes", "write_segment"]
