"""OpenAI speech-to-text provider."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from openai import AsyncOpenAI, OpenAIError

from ..settings import APISettings
from .errors import ProviderUnavailable, TranscriptionError


class OpenAIEngine:
    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self._client: Optional[AsyncOpenAI] = None

    @property
    def available(self) -> bool:
        return bool(self.settings.openai_api_key)

    def _get_client(self) -> AsyncOpenAI:
        if not self.settings.openai_api_key:
            raise ProviderUnavailable("OPENAI_API_KEY is not configured")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def transcribe_path(self, path: Path, language: str | None = None) -> Tuple[str, str]:
        client = self._get_client()
        try:
            with path.open("rb") as handle:
                transcript = await client.audio.transcriptions.create(
                    model=self.settings.openai_whisper_model,
                    file=(path.name, handle, "audio/wav"),
                )
        except OpenAIError as exc:
            raise TranscriptionError(f"OpenAI transcription failed: {exc}") from exc
        return (transcript.text or "").strip(), language or "auto"
