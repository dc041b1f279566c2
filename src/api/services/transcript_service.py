"""Run one uploaded recording through a transcription provider."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from ..metrics import TRANSCRIBE_COUNTER, TRANSCRIBE_DURATION
from ..settings import APISettings
from .errors import TranscriptionError
from .gemini_engine import GeminiEngine
from .openai_engine import OpenAIEngine
from .whisper_engine import get_whisper_engine

LOGGER = logging.getLogger("earshot.api.transcribe")

PROVIDERS = ("whisper", "openai", "gemini")


@dataclass
class TranscriptResult:
    text: str
    provider: str
    lang: str = "auto"
    metrics: Dict[str, float] = field(default_factory=dict)


class TranscriptionFailed(Exception):
    """Provider failure carrying the timings collected before it happened."""

    def __init__(self, message: str, metrics: Dict[str, float]) -> None:
        super().__init__(message)
        self.metrics = metrics


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 3)


class TranscriptService:
    """Write the upload to a scratch directory, transcribe it, clean up."""

    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self.whisper = get_whisper_engine(settings)
        self.openai = OpenAIEngine(settings)
        self.gemini = GeminiEngine(settings)

    def available_providers(self) -> list[str]:
        engines = {"whisper": self.whisper, "openai": self.openai, "gemini": self.gemini}
        return [name for name in PROVIDERS if engines[name].available]

    async def transcribe(
        self,
        data: bytes,
        filename: str | None,
        provider: str,
        language: str | None = None,
        *,
        mode: str = "transcript",
    ) -> TranscriptResult:
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown provider {provider!r}")
        metrics = {"write_ms": 0.0, "transcribe_ms": 0.0, "total_ms": 0.0}
        started = time.perf_counter()
        scratch_root = Path(self.settings.data_dir) / "tmp"
        scratch_root.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix="upload-", dir=scratch_root))
        try:
            write_start = time.perf_counter()
            path = workdir / (Path(filename).name if filename else "recording.wav")
            path.write_bytes(data)
            metrics["write_ms"] = _elapsed_ms(write_start)

            transcribe_start = time.perf_counter()
            try:
                text, lang = await self._dispatch(provider, path, language, mode)
            except (TranscriptionError, OSError, RuntimeError) as exc:
                metrics["transcribe_ms"] = _elapsed_ms(transcribe_start)
                metrics["total_ms"] = _elapsed_ms(started)
                TRANSCRIBE_COUNTER.labels(provider=provider, status="error").inc()
                LOGGER.error("Transcription via %s failed: %s", provider, exc)
                raise TranscriptionFailed(str(exc), metrics) from exc
            metrics["transcribe_ms"] = _elapsed_ms(transcribe_start)
            TRANSCRIBE_DURATION.labels(provider=provider).observe(metrics["transcribe_ms"] / 1000.0)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)
        metrics["total_ms"] = _elapsed_ms(started)
        TRANSCRIBE_COUNTER.labels(provider=provider, status="success").inc()
        LOGGER.info(
            "Transcribed %d bytes via %s in %.1f ms",
            len(data),
            provider,
            metrics["total_ms"],
        )
        return TranscriptResult(text=text, provider=provider, lang=lang, metrics=metrics)

    async def _dispatch(
        self, provider: str, path: Path, language: str | None, mode: str = "transcript"
    ) -> tuple[str, str]:
        if provider == "openai":
            return await self.openai.transcribe_path(path, language)
        if provider == "gemini":
            return await self.gemini.transcribe_path(path, language, mode=mode)
        return await asyncio.to_thread(self.whisper.transcribe_path, path, language)
