"""Transcription endpoint."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse

from ..deps.auth import get_api_key
from ..schemas import ErrorResponse, TranscribeMetrics, TranscribeResponse
from ..services.transcript_service import TranscriptionFailed, TranscriptService
from ..settings import APISettings, get_settings

router = APIRouter(prefix="/v1", tags=["transcribe"])


def get_service(settings: APISettings = Depends(get_settings)) -> TranscriptService:
    return TranscriptService(settings)


@router.post(
    "/transcribe",
    response_model=TranscribeResponse,
    responses={500: {"model": ErrorResponse}},
)
async def transcribe_audio(
    file: UploadFile | None = File(None),
    audio: UploadFile | None = File(None),
    provider: Literal["whisper", "openai", "gemini"] | None = Query(None),
    lang: str | None = Query(None),
    mode: Literal["transcript", "summary"] = Query("transcript"),
    _: str = Depends(get_api_key),
    settings: APISettings = Depends(get_settings),
    service: TranscriptService = Depends(get_service),
):
    upload = file or audio
    if upload is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio data provided")
    content_type = upload.content_type or ""
    if not content_type.startswith("audio/"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported media type {content_type or 'unknown'}; expected audio/*",
        )
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio data provided")

    chosen = provider or settings.default_provider
    if mode != "transcript" and chosen != "gemini":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Mode {mode!r} is only supported by the gemini provider",
        )
    try:
        result = await service.transcribe(data, upload.filename, chosen, lang, mode=mode)
    except TranscriptionFailed as exc:
        body = ErrorResponse(error=str(exc), metrics=TranscribeMetrics(**exc.metrics))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())
    return TranscribeResponse(
        transcription=result.text,
        text=result.text,
        provider=result.provider,
        lang=result.lang,
        mode=mode,
        metrics=TranscribeMetrics(**result.metrics),
    )
