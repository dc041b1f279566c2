"""FastAPI application factory for the transcription backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .metrics import instrument_app, router as metrics_router
from .routers import health, transcribe
from .settings import get_settings

LOGGER = logging.getLogger("earshot.api")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.version)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    instrument_app(app)
    app.include_router(health.router)
    app.include_router(transcribe.router)
    app.include_router(metrics_router)
    if not settings.api_keys:
        LOGGER.warning("API_KEYS is empty; the API accepts unauthenticated requests")
    return app


app = create_app()
