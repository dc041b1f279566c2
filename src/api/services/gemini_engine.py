"""Gemini provider: sends the WAV inline with an instruction prompt."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..settings import APISettings
from .errors import ProviderUnavailable, TranscriptionError

LOGGER = logging.getLogger("earshot.api.gemini")

PROMPTS = {
    "transcript": "Generate a transcript of the speech. Do not output any other text.",
    "summary": "Please summarize the audio.",
}


class GeminiEngine:
    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self._client: Optional[genai.Client] = None

    @property
    def available(self) -> bool:
        return bool(self.settings.gemini_api_key)

    def _get_client(self) -> genai.Client:
        if not self.settings.gemini_api_key:
            raise ProviderUnavailable("GEMINI_API_KEY is not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self.settings.gemini_api_key)
        return self._client

    async def transcribe_path(
        self,
        path: Path,
        language: str | None = None,
        *,
        mode: str = "transcript",
    ) -> Tuple[str, str]:
        prompt = PROMPTS.get(mode)
        if prompt is None:
            raise ValueError(f"Unknown Gemini mode {mode!r}")
        client = self._get_client()
        audio = types.Part.from_bytes(data=path.read_bytes(), mime_type="audio/wav")
        try:
            response = await client.aio.models.generate_content(
                model=self.settings.gemini_model,
                contents=[prompt, audio],
            )
        except genai_errors.APIError as exc:
            raise TranscriptionError(f"Gemini request failed: {exc}") from exc
        text = (response.text or "").strip()
        LOGGER.debug("Gemini returned %d characters for %s", len(text), path.name)
        return text, language or "auto"
