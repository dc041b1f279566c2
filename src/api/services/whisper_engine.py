"""Lazy Whisper (faster-whisper) loader with a mock mode for tests."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, Tuple

try:  # pragma: no cover - optional heavy dependency
    from faster_whisper import WhisperModel  # type: ignore
except ImportError:  # pragma: no cover
    WhisperModel = None  # type: ignore

from ..settings import APISettings
from .errors import ProviderUnavailable

LOGGER = logging.getLogger("earshot.api.whisper")


class WhisperEngine:
    """Loads the local Whisper model on first use; one instance per process."""

    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._model = None
        self._mock = settings.whisper_mock_transcriber
        if self._mock:
            LOGGER.warning(
                "Whisper mock mode enabled (set WHISPER_USE_MOCK=0 to enable real transcription)."
            )

    @property
    def available(self) -> bool:
        return self._mock or WhisperModel is not None

    def _load_model(self):
        if WhisperModel is None:
            raise ProviderUnavailable("faster-whisper is not installed; install the 'whisper' extra")
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        self._model = WhisperModel(
                            self.settings.whisper_model,
                            device=self.settings.whisper_device,
                            compute_type=self.settings.whisper_compute_type,
                        )
                    except Exception as exc:  # pragma: no cover - hardware/env dep
                        LOGGER.error(
                            "Failed to load Whisper model '%s': %s",
                            self.settings.whisper_model,
                            exc,
                        )
                        raise
        return self._model

    def transcribe_path(self, path: Path, language: str | None = None) -> Tuple[str, str]:
        """Return ``(text, language)`` for the audio file at ``path``."""
        if self._mock:
            return f"[mock transcript for {path.name}]", language or "auto"
        model = self._load_model()
        segments, info = model.transcribe(str(path), language=language, beam_size=5)
        return _join_segments(segments, info)


def _join_segments(segments: Iterable, info) -> Tuple[str, str]:
    pieces = [segment.text.strip() for segment in segments]
    text = " ".join(piece for piece in pieces if piece).strip()
    lang = getattr(info, "language", None) or "auto"
    return text, lang


_ENGINES: dict[tuple, WhisperEngine] = {}


def get_whisper_engine(settings: APISettings) -> WhisperEngine:
    key = (
        settings.whisper_model,
        settings.whisper_device,
        settings.whisper_compute_type,
        settings.whisper_mock_transcriber,
    )
    engine = _ENGINES.get(key)
    if engine is None:
        engine = _ENGINES[key] = WhisperEngine(settings)
    return engine
