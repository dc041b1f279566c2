"""API settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


class APISettings(BaseModel):
    app_name: str = Field(default="Earshot Transcription API")
    version: str = Field(default="0.1.0")
    data_dir: str = Field(default=os.getenv("DATA_DIR", "data"))
    api_keys: List[str] = Field(default_factory=lambda: _split_keys())
    default_provider: str = Field(default=os.getenv("DEFAULT_PROVIDER", "whisper"))
    whisper_model: str = Field(default=os.getenv("WHISPER_MODEL", "tiny"))
    whisper_device: str = Field(default=os.getenv("WHISPER_DEVICE", "cpu"))
    whisper_compute_type: str = Field(
        default=os.getenv("WHISPER_COMPUTE_TYPE", "int8")
    )
    whisper_mock_transcriber: bool = Field(
        default=os.getenv("WHISPER_USE_MOCK", "false").lower() in {"1", "true", "yes"}
    )
    openai_api_key: str | None = Field(default=os.getenv("OPENAI_API_KEY"))
    openai_whisper_model: str = Field(
        default=os.getenv("OPENAI_WHISPER_MODEL", "gpt-4o-mini-transcribe")
    )
    gemini_api_key: str | None = Field(
        default=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    )
    gemini_model: str = Field(default=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"))


def _split_keys() -> List[str]:
    raw = os.getenv("API_KEYS") or os.getenv("API_KEY") or ""
    return [key.strip() for key in raw.split(",") if key.strip()]


@lru_cache()
def get_settings() -> APISettings:
    return APISettings()
