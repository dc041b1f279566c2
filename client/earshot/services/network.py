"""HTTP client for the transcription backend."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..store.settings_store import SettingsStore

PROVIDERS = ("whisper", "openai", "gemini")


class ApiError(Exception):
    pass


class ApiClient:
    def __init__(self, settings: SettingsStore, *, timeout: float = 30.0, client: Optional[httpx.Client] = None) -> None:
        self.settings_store = settings
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict:
        api_key = self.settings_store.get().api_key
        if not api_key:
            return {}
        return {"X-API-Key": api_key}

    def _url(self, path: str) -> str:
        base = self.settings_store.get().server_url.rstrip("/")
        if not base:
            raise ApiError("Server URL missing")
        return f"{base}{path}"

    def test_connection(self) -> bool:
        try:
            resp = self._client.get(self._url("/healthz"), headers=self._headers())
            return resp.status_code == 200
        except ApiError:
            raise
        except Exception as exc:
            raise ApiError(str(exc)) from exc

    def transcribe(
        self,
        wav_bytes: bytes,
        provider: str | None = None,
        *,
        filename: str = "recording.wav",
        mode: str | None = None,
    ) -> Dict[str, Any]:
        provider = provider or self.settings_store.get().provider
        if provider not in PROVIDERS:
            raise ApiError(f"Unknown provider: {provider}")
        params = {"provider": provider}
        if mode:
            params["mode"] = mode
        try:
            resp = self._client.post(
                self._url("/v1/transcribe"),
                headers=self._headers(),
                params=params,
                files={"audio": (filename, wav_bytes, "audio/wav")},
            )
            if resp.status_code == 401:
                raise ApiError("Unauthorized: check API key")
            resp.raise_for_status()
            try:
                data = resp.json()
            except ValueError as exc:
                raise ApiError(f"Invalid response: {exc}") from exc
            if not isinstance(data, dict):
                raise ApiError(f"Invalid response: expected a JSON object, got {type(data).__name__}")
            return data
        except ApiError:
            raise
        except httpx.HTTPStatusError as exc:
            raise ApiError(f"HTTP error! status: {exc.response.status_code}") from exc
        except Exception as exc:
            raise ApiError(str(exc)) from exc

    def close(self) -> None:
        self._client.close()


__all__ = ["ApiClient", "ApiError", "PROVIDERS"]
