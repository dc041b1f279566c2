"""Background worker that encodes closed segments and sends them for transcription."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from ..audio.encoder import encode_segment_wav
from ..audio.errors import SegmentAssemblyError
from ..audio.types import Segment
from ..store.transcript_store import TranscriptStore
from .logger import LogBuffer
from .network import ApiClient, ApiError

LOGGER = logging.getLogger("earshot.uploader")

_SENTINEL = object()


class UploadWorker:
    """Fire-and-forget sink: ``submit`` never blocks the recording loop.

    Segments are handled in order on a daemon thread. Results and errors are
    reported through the callbacks from that thread. No retries.
    """

    def __init__(
        self,
        client: ApiClient,
        logger: LogBuffer,
        transcripts: TranscriptStore | None = None,
        *,
        provider: str | None = None,
        on_result: Callable[[Segment, str], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.client = client
        self.logger = logger
        self.transcripts = transcripts
        self.provider = provider
        self.on_result = on_result
        self.on_error = on_error
        self.origin_ms = 0.0
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._thread: threading.Thread | None = None

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="earshot-uploader", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Finish queued segments, then stop the thread."""
        if not self._thread:
            return
        self._queue.put(_SENTINEL)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            LOGGER.warning("Upload worker still busy after %.1fs; leaving it to finish", timeout)
        self._thread = None

    def submit(self, segment: Segment) -> None:
        self._queue.put(segment)

    def join(self) -> None:
        self._queue.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _SENTINEL:
                    return
                self._handle(item)  # type: ignore[arg-type]
            except Exception as exc:
                LOGGER.exception("Upload of segment failed unexpectedly")
                self.logger.add(f"Upload failed: {exc}", logging.ERROR)
                self._report_error(exc)
            finally:
                self._queue.task_done()

    def _handle(self, segment: Segment) -> None:
        label = f"#{segment.index}"
        try:
            wav_bytes = encode_segment_wav(segment)
        except SegmentAssemblyError as exc:
            self.logger.add(f"Segment {label} dropped: {exc}", logging.WARNING)
            self._report_error(exc)
            return
        try:
            self.logger.add(f"Uploading segment {label} ({segment.duration_ms / 1000.0:.1f}s)...")
            response = self.client.transcribe(
                wav_bytes,
                self.provider,
                filename=f"segment_{segment.index:04d}.wav",
            )
        except ApiError as exc:
            self.logger.add(f"Upload failed ({label}): {exc}", logging.WARNING)
            self._report_error(exc)
            return
        if not isinstance(response, dict):
            error = ApiError(f"Invalid response for segment {label}: {type(response).__name__}")
            self.logger.add(str(error), logging.WARNING)
            self._report_error(error)
            return
        text = str(response.get("transcription") or response.get("text") or "").strip()
        self._persist_transcript(segment, text)
        self.logger.add(f"Segment {label} transcribed")
        if self.on_result is not None:
            try:
                self.on_result(segment, text)
            except Exception:
                LOGGER.exception("Result handler failed for segment %s", label)

    def _persist_transcript(self, segment: Segment, text: str) -> None:
        if not text or self.transcripts is None:
            return
        try:
            self.transcripts.append(
                segment_index=segment.index,
                text=text,
                start_ms=segment.started_at_ms - self.origin_ms,
                end_ms=segment.ended_at_ms - self.origin_ms,
            )
        except OSError as exc:
            self.logger.add(f"Transcript save failed (#{segment.index}): {exc}", logging.WARNING)
            self._report_error(exc)

    def _report_error(self, exc: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(exc)
        except Exception:
            LOGGER.exception("Error handler failed")


__all__ = ["UploadWorker"]
