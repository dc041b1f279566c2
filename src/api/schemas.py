"""Pydantic schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class TranscribeMetrics(BaseModel):
    write_ms: float = 0.0
    transcribe_ms: float = 0.0
    total_ms: float = 0.0


class TranscribeResponse(BaseModel):
    transcription: str
    text: str
    provider: str
    lang: str = Field(default="auto")
    mode: str = Field(default="transcript")
    metrics: TranscribeMetrics = Field(default_factory=TranscribeMetrics)


class ErrorResponse(BaseModel):
    error: str
    metrics: TranscribeMetrics | None = None


class HealthResponse(BaseModel):
    ok: bool
    providers: List[str]
    timestamp: datetime
