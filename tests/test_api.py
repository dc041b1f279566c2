import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient


@pytest.fixture()
def api_client(tmp_path):
    from src.api.settings import APISettings, get_settings
    from src.api.app import create_app

    get_settings.cache_clear()  # type: ignore
    settings = APISettings(
        api_keys=["test-key"],
        data_dir=str(tmp_path),
        whisper_mock_transcriber=True,
        openai_api_key=None,
        gemini_api_key=None,
    )

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings

    client = TestClient(app)
    return client, settings, tmp_path


def _auth_headers():
    return {"X-API-Key": "test-key"}


def _wav_bytes(seconds: float = 0.5, sample_rate: int = 16000) -> bytes:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    buffer = io.BytesIO()
    sf.write(buffer, 0.2 * np.sin(2 * np.pi * 220 * t), sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def test_auth_required(api_client):
    client, *_ = api_client
    resp = client.get("/healthz")
    assert resp.status_code == 401
    resp = client.get("/healthz", headers={"X-API-Key": "wrong"})
    assert resp.status_code == 401


def test_health_lists_available_providers(api_client):
    client, *_ = api_client
    resp = client.get("/healthz", headers=_auth_headers())
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["providers"] == ["whisper"]
    assert "timestamp" in body


def test_open_api_when_no_keys_configured(api_client):
    client, settings, _ = api_client
    settings.api_keys = []
    assert client.get("/healthz").status_code == 200


def test_transcribe_with_default_provider(api_client):
    client, _, tmp_path = api_client
    resp = client.post(
        "/v1/transcribe",
        headers=_auth_headers(),
        files={"file": ("segment_0001.wav", _wav_bytes(), "audio/wav")},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["provider"] == "whisper"
    assert data["transcription"] == data["text"] == "[mock transcript for segment_0001.wav]"
    metrics = data["metrics"]
    assert set(metrics) == {"write_ms", "transcribe_ms", "total_ms"}
    assert metrics["total_ms"] >= metrics["transcribe_ms"]
    # scratch files are removed after each request
    assert list((tmp_path / "tmp").iterdir()) == []


def test_transcribe_accepts_audio_field(api_client):
    client, *_ = api_client
    resp = client.post(
        "/v1/transcribe",
        params={"provider": "whisper"},
        headers=_auth_headers(),
        files={"audio": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert resp.status_code == 200
    assert resp.json()["provider"] == "whisper"


def test_transcribe_rejects_bad_requests(api_client):
    client, *_ = api_client
    missing = client.post("/v1/transcribe", headers=_auth_headers())
    assert missing.status_code == 400
    assert missing.json()["detail"] == "No audio data provided"

    empty = client.post(
        "/v1/transcribe",
        headers=_auth_headers(),
        files={"file": ("recording.wav", b"", "audio/wav")},
    )
    assert empty.status_code == 400

    wrong_type = client.post(
        "/v1/transcribe",
        headers=_auth_headers(),
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert wrong_type.status_code == 415

    unknown = client.post(
        "/v1/transcribe",
        params={"provider": "deepgram"},
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert unknown.status_code == 422


def test_unconfigured_provider_returns_500_with_metrics(api_client):
    client, *_ = api_client
    resp = client.post(
        "/v1/transcribe",
        params={"provider": "gemini"},
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert resp.status_code == 500
    body = resp.json()
    assert "GEMINI_API_KEY" in body["error"]
    assert body["metrics"]["write_ms"] >= 0


def test_gemini_provider_dispatch(api_client, monkeypatch):
    from src.api.services import gemini_engine

    seen = {}

    async def fake_transcribe(self, path, language=None, *, mode="transcript"):
        seen["bytes"] = path.read_bytes()[:4]
        seen["mode"] = mode
        return "hola", language or "auto"

    monkeypatch.setattr(gemini_engine.GeminiEngine, "transcribe_path", fake_transcribe)
    client, settings, _ = api_client
    settings.gemini_api_key = "g-key"

    resp = client.post(
        "/v1/transcribe",
        params={"provider": "gemini"},
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert resp.status_code == 200
    assert resp.json()["transcription"] == "hola"
    assert seen == {"bytes": b"RIFF", "mode": "transcript"}

    summary = client.post(
        "/v1/transcribe",
        params={"provider": "gemini", "mode": "summary"},
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert summary.status_code == 200
    assert summary.json()["mode"] == "summary"
    assert seen["mode"] == "summary"

    health = client.get("/healthz", headers=_auth_headers()).json()
    assert health["providers"] == ["whisper", "gemini"]


def test_metrics_endpoint_counts_transcriptions(api_client):
    client, *_ = api_client
    client.post(
        "/v1/transcribe",
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    resp = client.get("/metrics", headers=_auth_headers())
    assert resp.status_code == 200
    assert 'transcribe_requests_total{provider="whisper",status="success"}' in resp.text


def test_summary_mode_requires_gemini(api_client):
    client, *_ = api_client
    resp = client.post(
        "/v1/transcribe",
        params={"provider": "whisper", "mode": "summary"},
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert resp.status_code == 400
    unknown = client.post(
        "/v1/transcribe",
        params={"mode": "poem"},
        headers=_auth_headers(),
        files={"file": ("recording.wav", _wav_bytes(), "audio/wav")},
    )
    assert unknown.status_code == 422
