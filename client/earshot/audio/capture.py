"""Capture sources feeding analysis blocks and encoded chunks to the engine."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Protocol

import numpy as np
import soundfile as sf

from ..config import CONFIG, RecorderConfig
from .clock import ManualClock
from .encoder import pcm16_bytes
from .errors import CaptureFault, CaptureStartError
from .types import CaptureFrame

LOGGER = logging.getLogger("earshot.capture")

ErrorCallback = Callable[[BaseException], None]


class CaptureSource(Protocol):
    """Frames flow for as long as the source is open.

    ``start`` opens the source on first use. ``stop`` resolves once every frame
    captured before it was handed to the loop; the controller decides which
    chunks belong to a segment.
    """

    on_error: Optional[ErrorCallback]

    def start(self) -> None: ...

    async def stop(self) -> None: ...

    def close(self) -> None: ...

    def frames(self) -> AsyncIterator[CaptureFrame]: ...


def _try_import_sounddevice():
    try:
        import sounddevice as sd  # type: ignore

        return sd
    except Exception as exc:
        LOGGER.debug("sounddevice unavailable: %s", exc)
        return None


class SoundDeviceCapture:
    """Microphone capture through a PortAudio input stream."""

    def __init__(self, config: RecorderConfig | None = None, *, device: int | str | None = None) -> None:
        self.config = config or CONFIG
        self.device = device
        self.on_error: Optional[ErrorCallback] = None
        self._queue: asyncio.Queue[Optional[CaptureFrame]] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream = None
        self._active = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._closed

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._closed:
            raise CaptureStartError("Capture source has been closed")
        if self._stream is None:
            self._open_stream()
        self._active = True
        LOGGER.debug("Capturing segment audio from input device %s", self.device or "default")

    def _open_stream(self) -> None:
        sd = _try_import_sounddevice()
        if sd is None:
            raise CaptureStartError("sounddevice is not installed; microphone capture unavailable")
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise CaptureStartError("Microphone capture must start inside a running event loop") from exc
        try:
            stream = sd.InputStream(
                samplerate=self.config.sample_rate_hz,
                channels=self.config.channels,
                dtype="float32",
                blocksize=self.config.analysis_window_size,
                device=self.device,
                callback=self._callback,
                finished_callback=self._finished,
            )
            stream.start()
        except Exception as exc:
            raise CaptureStartError(f"Could not open input device: {exc}") from exc
        self._stream = stream
        LOGGER.info(
            "Input stream opened (%d Hz, %d sample blocks)",
            self.config.sample_rate_hz,
            self.config.analysis_window_size,
        )

    def _callback(self, indata, frames, time_info, status) -> None:  # noqa: ARG002
        # Runs on the PortAudio thread.
        if status:
            LOGGER.debug("Input stream status: %s", status)
        samples = np.array(indata[:, 0] if indata.ndim > 1 else indata, dtype=np.float32, copy=True)
        payload = pcm16_bytes(samples)
        if self._loop is not None and not self._closed:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, CaptureFrame(samples, payload))

    def _finished(self) -> None:
        if self._closed or self._loop is None:
            return
        fault = CaptureFault("Input stream stopped unexpectedly (device disconnected?)")
        self._loop.call_soon_threadsafe(self._report, fault)

    def _report(self, exc: BaseException) -> None:
        LOGGER.error("Capture error: %s", exc)
        if self.on_error is not None:
            self.on_error(exc)

    async def stop(self) -> None:
        self._active = False
        # Frames already handed to the loop are delivered before stop resolves.
        await asyncio.sleep(0)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._active = False
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
            LOGGER.debug("Input stream closed")
        self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[CaptureFrame]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class FileCapture:
    """Replays an audio file block by block, driving a manual clock."""

    def __init__(
        self,
        path: Path | str,
        config: RecorderConfig | None = None,
        *,
        clock: ManualClock | None = None,
        realtime: bool = False,
    ) -> None:
        self.path = Path(path)
        self.config = config or CONFIG
        self.clock = clock or ManualClock()
        self.realtime = realtime
        self.on_error: Optional[ErrorCallback] = None
        self._active = False
        self._closed = False
        self._opened = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def sample_rate(self) -> int:
        return int(sf.info(str(self.path)).samplerate)

    def start(self) -> None:
        if self._closed:
            raise CaptureStartError("Capture source has been closed")
        if not self._opened:
            if not self.path.exists():
                raise CaptureStartError(f"Audio file not found: {self.path}")
            try:
                info = sf.info(str(self.path))
            except Exception as exc:
                raise CaptureStartError(f"Unreadable audio file {self.path}: {exc}") from exc
            if info.samplerate != self.config.sample_rate_hz:
                LOGGER.warning(
                    "File sample rate %d Hz differs from configured %d Hz",
                    info.samplerate,
                    self.config.sample_rate_hz,
                )
            self._opened = True
        self._active = True

    async def stop(self) -> None:
        self._active = False
        await asyncio.sleep(0)

    def close(self) -> None:
        self._closed = True
        self._active = False

    async def frames(self) -> AsyncIterator[CaptureFrame]:
        block_ms = self.config.block_duration_ms
        try:
            blocks = sf.blocks(str(self.path), blocksize=self.config.analysis_window_size, dtype="float32")
            for block in blocks:
                if self._closed:
                    break
                if block.ndim > 1:
                    block = block.mean(axis=1)
                yield CaptureFrame(block, pcm16_bytes(block))
                self.clock.advance(block_ms)
                await asyncio.sleep(block_ms / 1000.0 if self.realtime else 0)
        except RuntimeError as exc:
            fault = CaptureFault(f"Failed reading {self.path.name}: {exc}")
            LOGGER.error("%s", fault)
            if self.on_error is not None:
                self.on_error(fault)


__all__ = ["CaptureSource", "FileCapture", "SoundDeviceCapture"]
