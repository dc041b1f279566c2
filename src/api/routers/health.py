"""Liveness endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..deps.auth import get_api_key
from ..schemas import HealthResponse
from ..services.transcript_service import TranscriptService
from ..settings import APISettings, get_settings

router = APIRouter(tags=["health"])


@router.get("/healthz", response_model=HealthResponse)
async def healthz(
    _: str = Depends(get_api_key),
    settings: APISettings = Depends(get_settings),
) -> HealthResponse:
    providers = TranscriptService(settings).available_providers()
    return HealthResponse(ok=True, providers=providers, timestamp=datetime.now(timezone.utc))
