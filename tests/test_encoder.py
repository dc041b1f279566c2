import io

import numpy as np
import pytest
import soundfile as sf

from client.earshot.audio.encoder import decode_pcm16, encode_segment_wav, pcm16_bytes, write_segment
from client.earshot.audio.errors import SegmentAssemblyError
from client.earshot.audio.types import CutReason, Segment


def _segment(chunks, index=0, sample_rate=16000):
    return Segment(
        index=index,
        chunks=tuple(chunks),
        started_at_ms=1000.0,
        ended_at_ms=1500.0,
        reason=CutReason.SILENCE,
        sample_rate=sample_rate,
    )


def test_pcm16_clips_and_scales_float_blocks():
    payload = pcm16_bytes(np.array([0.0, 0.5, 2.0, -2.0], dtype=np.float32))
    samples = decode_pcm16(payload)
    assert samples.tolist() == [0, 16383, 32767, -32767]


def test_decode_rejects_odd_payload():
    with pytest.raises(SegmentAssemblyError):
        decode_pcm16(b"\x00\x01\x02")


def test_segment_wav_contains_all_chunks(tmp_path):
    first = pcm16_bytes(np.full(800, 0.25, dtype=np.float32))
    second = pcm16_bytes(np.full(800, -0.25, dtype=np.float32))
    segment = _segment([first, second], sample_rate=8000)

    audio, rate = sf.read(io.BytesIO(encode_segment_wav(segment)), dtype="int16")
    assert rate == 8000
    assert audio.shape == (1600,)
    assert segment.duration_ms == 500.0

    path = write_segment(segment, tmp_path / "out")
    assert path.name == "segment_0000_silence.wav"
    assert sf.info(str(path)).frames == 1600


def test_empty_segment_cannot_be_encoded():
    with pytest.raises(SegmentAssemblyError):
        encode_segment_wav(_segment([b""]))
