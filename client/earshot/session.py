"""Wires capture, segmentation and the transcription sink into one session."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

from .audio.capture import CaptureSource, SoundDeviceCapture
from .audio.clock import Clock
from .audio.encoder import write_segment
from .audio.segment_controller import SegmentController
from .audio.types import RecorderEvent, Segment
from .config import CONFIG, RecorderConfig
from .services.logger import LogBuffer
from .services.network import PROVIDERS, ApiClient
from .services.uploader import UploadWorker
from .store.settings_store import SettingsStore
from .store.transcript_store import TranscriptStore

LOGGER = logging.getLogger("earshot.session")


class SegmentSink(Protocol):
    def submit(self, segment: Segment) -> None: ...


class SegmentWriter:
    """Sink that stores each segment as a WAV file instead of uploading it."""

    def __init__(self, directory: Path, logger: LogBuffer | None = None) -> None:
        self.directory = Path(directory)
        self.logger = logger
        self.written: list[Path] = []

    def submit(self, segment: Segment) -> None:
        path = write_segment(segment, self.directory)
        self.written.append(path)
        if self.logger is not None:
            self.logger.add(f"Segment #{segment.index} written to {path.name}")


def normalize_level(db: float) -> float:
    """Map a dB reading onto 0..1 for level meters (-60 dB and below is 0)."""
    return max(0.0, min(1.0, (db + 60.0) / 60.0))


class TranscriptionSession:
    def __init__(
        self,
        controller: SegmentController,
        sink: SegmentSink,
        *,
        provider: str = "whisper",
        logger: LogBuffer | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_audio_level: Callable[[float], None] | None = None,
    ) -> None:
        self.controller = controller
        self.sink = sink
        self.logger = logger or LogBuffer(controller.config.log_history)
        self.on_error = on_error
        self.on_audio_level = on_audio_level
        self._provider = provider
        self._consumer: Optional[asyncio.Task] = None
        self._attached = False
        self.set_provider(provider)
        self._attach()

    @property
    def provider(self) -> str:
        return self._provider

    def set_provider(self, provider: str) -> None:
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")
        self._provider = provider
        if isinstance(self.sink, UploadWorker):
            self.sink.provider = provider

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def _attach(self) -> None:
        events = self.controller.events
        events.on(RecorderEvent.SEGMENT, self._handle_segment)
        events.on(RecorderEvent.ERROR, self._handle_error)
        if self.on_audio_level is not None:
            events.on(RecorderEvent.LEVEL, self.on_audio_level)
        self.controller.capture.on_error = self.controller.on_capture_error
        self._attached = True

    def _detach(self) -> None:
        if not self._attached:
            return
        events = self.controller.events
        events.off(RecorderEvent.SEGMENT, self._handle_segment)
        events.off(RecorderEvent.ERROR, self._handle_error)
        if self.on_audio_level is not None:
            events.off(RecorderEvent.LEVEL, self.on_audio_level)
        self._attached = False

    def _handle_segment(self, segment: Segment) -> None:
        self.logger.add(f"Segment #{segment.index} closed ({segment.reason.value}, {segment.chunk_count} chunk(s))")
        self.sink.submit(segment)

    def _handle_error(self, exc: BaseException) -> None:
        self.logger.add(f"Error: {exc}", logging.ERROR)
        if self.on_error is not None:
            self.on_error(exc)

    async def start(self) -> None:
        """Open capture and begin segmenting; raises ``CaptureStartError``."""
        if isinstance(self.sink, UploadWorker):
            self.sink.origin_ms = self.controller.clock.now_ms()
            self.sink.start()
        try:
            self.controller.start()
        except Exception:
            if isinstance(self.sink, UploadWorker):
                self.sink.stop()
            raise
        self.logger.add("Recording started")
        frames = self.controller.capture.frames()
        self._consumer = asyncio.create_task(self.controller.consume(frames))
        self._consumer.add_done_callback(self._consumer_done)

    def _consumer_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Frame consumer crashed: %s", exc, exc_info=exc)
            self._handle_error(exc)

    async def wait(self) -> None:
        """Block until the capture source runs out of frames."""
        if self._consumer is not None:
            await asyncio.shield(self._consumer)

    async def stop(self) -> Optional[bytes]:
        """Flush the open segment, release capture and return the whole recording."""
        recording = self.controller.full_recording()
        try:
            await self.controller.dispose()
            recording = self.controller.full_recording() or recording
            consumer, self._consumer = self._consumer, None
            if consumer is not None and not consumer.done():
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)
        finally:
            self._detach()
            if isinstance(self.sink, UploadWorker):
                self.sink.stop()
            self.logger.add("Recording stopped")
        return recording


def create_session(
    settings: SettingsStore,
    *,
    capture: CaptureSource | None = None,
    config: RecorderConfig | None = None,
    clock: Clock | None = None,
    transcripts: TranscriptStore | None = None,
    api_client: ApiClient | None = None,
    logger: LogBuffer | None = None,
    on_result: Callable[[Segment, str], None] | None = None,
    on_error: Callable[[BaseException], None] | None = None,
    on_audio_level: Callable[[float], None] | None = None,
) -> TranscriptionSession:
    app_settings = settings.get()
    config = config or RecorderConfig.from_settings(app_settings, CONFIG)
    logger = logger or LogBuffer(config.log_history)
    capture = capture or SoundDeviceCapture(config)
    controller = SegmentController(capture, config, clock=clock)
    worker = UploadWorker(
        api_client or ApiClient(settings),
        logger,
        transcripts,
        provider=app_settings.provider,
        on_result=on_result,
        on_error=on_error,
    )
    return TranscriptionSession(
        controller,
        worker,
        provider=app_settings.provider,
        logger=logger,
        on_error=on_error,
        on_audio_level=on_audio_level,
    )


__all__ = [
    "SegmentSink",
    "SegmentWriter",
    "TranscriptionSession",
    "create_session",
    "normalize_level",
]
