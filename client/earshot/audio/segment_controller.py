"""Segmentation state machine driven by level-monitor edges."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncIterable, List, Optional

from ..config import CONFIG, RecorderConfig
from .clock import Clock, MonotonicClock
from .errors import CaptureFault, CaptureStartError, EngineDisposedError, SegmentAssemblyError
from .events import EventEmitter
from .level_monitor import LevelMonitor
from .types import (
    AudioBlock,
    CaptureFrame,
    CutReason,
    Edge,
    LevelReading,
    RecorderEvent,
    Segment,
    SegmentationState,
)

if TYPE_CHECKING:  # pragma: no cover
    from .capture import CaptureSource

LOGGER = logging.getLogger("earshot.recorder")

_BYTES_LIKE = (bytes, bytearray, memoryview)


class SegmentController:
    """Owns the recording buffer and decides where segments begin and end.

    Everything runs on one event loop. The only suspension point is the
    stop handshake with the capture source: ``request_close`` records the
    cut index when ``stop()`` is issued, and chunks that arrive before the
    stop resolves stay behind the cut and open the next segment.
    """

    def __init__(
        self,
        capture: "CaptureSource",
        config: RecorderConfig | None = None,
        *,
        clock: Clock | None = None,
        monitor: LevelMonitor | None = None,
        emitter: EventEmitter | None = None,
    ) -> None:
        self.capture = capture
        self.config = (config or CONFIG).validate()
        self.clock: Clock = clock or MonotonicClock()
        self.monitor = monitor or LevelMonitor(
            self.config.silence_threshold_db,
            self.config.silence_timeout_ms,
            clock=self.clock,
        )
        self.events = emitter or EventEmitter()
        self._state = SegmentationState.IDLE
        self._chunks: List[bytes] = []
        self._history: List[bytes] = []
        self._recording_started: Optional[float] = None
        self._closing: Optional[asyncio.Future] = None
        self._dispose_task: Optional[asyncio.Future] = None
        self._segments_emitted = 0

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> SegmentationState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is SegmentationState.RECORDING

    @property
    def is_waiting_for_speech(self) -> bool:
        return self._state is SegmentationState.WAITING_FOR_SPEECH

    @property
    def is_closing(self) -> bool:
        return self._closing is not None

    @property
    def disposed(self) -> bool:
        return self._dispose_task is not None

    @property
    def segments_emitted(self) -> int:
        return self._segments_emitted

    @property
    def buffered_chunks(self) -> int:
        return len(self._chunks)

    def full_recording(self) -> Optional[bytes]:
        if not self._history:
            return None
        return b"".join(self._history)

    def _set_state(self, state: SegmentationState) -> None:
        if state is self._state:
            return
        LOGGER.debug("State %s -> %s", self._state.value, state.value)
        self._state = state
        self.events.emit(RecorderEvent.STATE, state)

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        if self.disposed:
            raise EngineDisposedError("Recorder has been disposed")
        if self._state is not SegmentationState.IDLE:
            LOGGER.debug("Start ignored; recorder is %s", self._state.value)
            return
        LOGGER.debug("Starting recording...")
        try:
            self.capture.start()
        except Exception as exc:
            error = exc if isinstance(exc, CaptureStartError) else CaptureStartError(str(exc))
            LOGGER.error("Failed to start capture: %s", error)
            self.events.emit(RecorderEvent.ERROR, error)
            if error is exc:
                raise
            raise error from exc
        self._chunks = []
        self._history = []
        self.monitor.reset()
        self._open_buffer()
        LOGGER.debug("Recording started")

    def _open_buffer(self) -> None:
        self._recording_started = self.clock.now_ms()
        self._set_state(SegmentationState.RECORDING)

    async def dispose(self) -> None:
        """Flush an active segment and release everything; repeat calls are no-ops."""
        if self._dispose_task is None:
            self._dispose_task = asyncio.ensure_future(self._dispose())
        else:
            LOGGER.debug("Dispose already requested")
        await self._dispose_task

    async def _dispose(self) -> None:
        LOGGER.debug("Disposing recorder...")
        try:
            if self._closing is not None:
                await self._closing
            if self._state is SegmentationState.RECORDING:
                LOGGER.debug("Stopping active recording before disposal")
                closing = self.request_close(CutReason.DISPOSE, next_state=SegmentationState.IDLE)
                if closing is not None:
                    await closing
        finally:
            self._release()
        LOGGER.debug("Recorder disposed")

    def _release(self) -> None:
        self._chunks = []
        self._recording_started = None
        self._closing = None
        self.monitor.reset()
        self._set_state(SegmentationState.IDLE)
        self._close_capture()

    def _close_capture(self) -> None:
        try:
            self.capture.close()
        except Exception as exc:
            LOGGER.error("Failed to release capture: %s", exc)
            self.events.emit(RecorderEvent.ERROR, CaptureFault(f"Failed to release capture: {exc}"))

    # -- input -------------------------------------------------------------

    def push_chunk(self, chunk: bytes) -> None:
        """Accept one encoded chunk from the capture source."""
        if chunk is None:
            return
        if isinstance(chunk, _BYTES_LIKE) and len(chunk) == 0:
            return
        accepting = self._state is SegmentationState.RECORDING or (
            self._closing is not None and self._state is SegmentationState.WAITING_FOR_SPEECH
        )
        if not accepting:
            LOGGER.debug("Dropping chunk while %s", self._state.value)
            return
        self._chunks.append(chunk)
        if isinstance(chunk, _BYTES_LIKE):
            self._history.append(bytes(chunk))

    async def tick(self, block: AudioBlock) -> LevelReading:
        reading = self.monitor.observe(block)
        self.events.emit(RecorderEvent.LEVEL, reading.db)
        for edge in reading.edges:
            await self._handle_edge(edge)
        await self._check_duration()
        return reading

    async def process(self, frame: CaptureFrame) -> LevelReading:
        """Tick the monitor and file the frame's chunk into the right buffer."""
        if self._state is SegmentationState.RECORDING:
            self.push_chunk(frame.payload)
            return await self.tick(frame.samples)
        reading = await self.tick(frame.samples)
        self.push_chunk(frame.payload)
        return reading

    async def consume(self, frames: AsyncIterable[CaptureFrame]) -> None:
        async for frame in frames:
            if self.disposed:
                break
            await self.process(frame)

    def on_capture_error(self, exc: BaseException) -> None:
        fault = exc if isinstance(exc, CaptureFault) else CaptureFault(str(exc) or exc.__class__.__name__)
        if fault is not exc:
            fault.__cause__ = exc
        self._fault(fault)

    # -- transitions -------------------------------------------------------

    async def _handle_edge(self, edge: Edge) -> None:
        if edge is Edge.SILENCE_TIMED_OUT:
            if self._state is SegmentationState.RECORDING:
                LOGGER.debug("Silence timeout reached, stopping current segment")
                await self._cut(CutReason.SILENCE)
        elif edge is Edge.SPEECH_DETECTED:
            if self._state is SegmentationState.WAITING_FOR_SPEECH:
                LOGGER.debug("Speech detected, starting new recording segment")
                await self._rearm()
        elif edge is Edge.SILENCE_STARTED:
            LOGGER.debug("Silence period started")
        elif edge is Edge.SILENCE_ENDED:
            LOGGER.debug("Silence period ended")

    async def _check_duration(self) -> None:
        if self._state is not SegmentationState.RECORDING or self._recording_started is None:
            return
        elapsed = self.clock.now_ms() - self._recording_started
        if elapsed >= self.config.max_segment_length_ms:
            LOGGER.debug(
                "Max recording length (%dms) reached, stopping current segment",
                self.config.max_segment_length_ms,
            )
            await self._cut(CutReason.MAX_LENGTH)

    async def _cut(self, reason: CutReason) -> None:
        closing = self.request_close(reason)
        if closing is not None:
            await closing

    def request_close(
        self,
        reason: CutReason,
        *,
        next_state: SegmentationState = SegmentationState.WAITING_FOR_SPEECH,
    ) -> Optional[asyncio.Future]:
        """Issue the capture stop and mark the cut index; returns the pending close."""
        if self._state is not SegmentationState.RECORDING:
            return self._closing
        cut_index = len(self._chunks)
        started = self._recording_started if self._recording_started is not None else self.clock.now_ms()
        self._recording_started = None
        self._set_state(next_state)
        LOGGER.debug("Stopping current recording segment (%s, %d chunk(s))", reason.value, cut_index)
        self._closing = asyncio.ensure_future(self._stop_and_flush(cut_index, started, reason))
        return self._closing

    async def _stop_and_flush(self, cut_index: int, started: float, reason: CutReason) -> None:
        try:
            try:
                await self.capture.stop()
            except Exception as exc:
                LOGGER.error("Failed to stop recording: %s", exc)
                fault = CaptureFault(f"Failed to stop capture: {exc}")
                fault.__cause__ = exc
                self._fault(fault)
                return
            ended = self.clock.now_ms()
            closed, self._chunks = self._chunks[:cut_index], self._chunks[cut_index:]
            if self._chunks:
                LOGGER.debug("%d late chunk(s) carried into the next segment", len(self._chunks))
            self._emit_segment(closed, started, ended, reason)
        finally:
            self._closing = None

    async def _rearm(self) -> None:
        if self._closing is not None:
            await self._closing
        if self._state is not SegmentationState.WAITING_FOR_SPEECH or self.disposed:
            return
        try:
            self.capture.start()
        except Exception as exc:
            LOGGER.error("Failed to restart capture: %s", exc)
            fault = CaptureFault(f"Failed to restart capture: {exc}")
            fault.__cause__ = exc
            self._fault(fault)
            return
        self._open_buffer()

    def _fault(self, fault: CaptureFault) -> None:
        LOGGER.error("Capture fault, discarding %d buffered chunk(s): %s", len(self._chunks), fault)
        self._chunks = []
        self._recording_started = None
        self.monitor.reset()
        self._set_state(SegmentationState.IDLE)
        self.events.emit(RecorderEvent.ERROR, fault)
        # a faulted source is finished; closing it ends the frame stream
        self._close_capture()

    # -- output ------------------------------------------------------------

    def _emit_segment(self, closed: List[bytes], started: float, ended: float, reason: CutReason) -> Optional[Segment]:
        try:
            segment = self._build_segment(closed, started, ended, reason)
        except SegmentAssemblyError as exc:
            LOGGER.warning("Dropping segment: %s", exc)
            self.events.emit(RecorderEvent.ERROR, exc)
            return None
        if segment is None:
            LOGGER.debug("Segment closed without audio; nothing emitted")
            return None
        self._segments_emitted += 1
        LOGGER.debug(
            "Emitting segment #%d: %d chunk(s), %d bytes, %.0fms",
            segment.index,
            segment.chunk_count,
            len(segment.payload),
            segment.duration_ms,
        )
        self.events.emit(RecorderEvent.SEGMENT, segment)
        return segment

    def _build_segment(
        self, closed: List[bytes], started: float, ended: float, reason: CutReason
    ) -> Optional[Segment]:
        chunks: List[bytes] = []
        for position, chunk in enumerate(closed):
            if not isinstance(chunk, _BYTES_LIKE):
                raise SegmentAssemblyError(
                    f"Chunk {position} is {type(chunk).__name__}, expected bytes"
                )
            if len(chunk):
                chunks.append(bytes(chunk))
        if not chunks:
            return None
        return Segment(
            index=self._segments_emitted,
            chunks=tuple(chunks),
            started_at_ms=started,
            ended_at_ms=ended,
            reason=reason,
            sample_rate=self.config.sample_rate_hz,
        )


__all__ = ["SegmentController"]
