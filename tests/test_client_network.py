import httpx
import pytest

from client.earshot.services.network import ApiClient, ApiError
from client.earshot.store.settings_store import SettingsStore


def make_client(tmp_path, transport, api_key="k"):
    settings = SettingsStore(tmp_path / "settings.json")
    settings.update(server_url="https://api.example.com", api_key=api_key, provider="gemini")
    return ApiClient(settings, client=httpx.Client(transport=transport))


def test_transcribe_posts_wav_with_provider(tmp_path):
    def handler(request):
        if request.method == "POST" and request.url.path == "/v1/transcribe":
            assert request.url.params["provider"] == "gemini"
            assert request.headers["X-API-Key"] == "k"
            body = request.content
            assert b'name="audio"' in body
            assert b"audio/wav" in body
            return httpx.Response(200, json={"transcription": "hello", "provider": "gemini"})
        if request.url.path == "/healthz":
            return httpx.Response(200, json={"ok": True, "providers": ["whisper"]})
        raise AssertionError("Unexpected request")

    client = make_client(tmp_path, httpx.MockTransport(handler))
    resp = client.transcribe(b"RIFF....")
    assert resp["transcription"] == "hello"
    assert client.test_connection() is True


def test_no_key_sends_no_header(tmp_path):
    def handler(request):
        assert "X-API-Key" not in request.headers
        return httpx.Response(200, json={"text": "ok"})

    client = make_client(tmp_path, httpx.MockTransport(handler), api_key="")
    assert client.transcribe(b"x", "whisper")["text"] == "ok"


@pytest.mark.parametrize(
    "status, message",
    [(401, "Unauthorized"), (500, "HTTP error! status: 500"), (415, "status: 415")],
)
def test_http_errors_raise_api_error(tmp_path, status, message):
    client = make_client(tmp_path, httpx.MockTransport(lambda request: httpx.Response(status)))
    with pytest.raises(ApiError) as excinfo:
        client.transcribe(b"x")
    assert message in str(excinfo.value)


def test_transport_failure_and_unknown_provider(tmp_path):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(tmp_path, httpx.MockTransport(handler))
    with pytest.raises(ApiError):
        client.transcribe(b"x")
    with pytest.raises(ApiError):
        client.transcribe(b"x", "nope")


def test_non_object_json_raises_api_error(tmp_path):
    client = make_client(tmp_path, httpx.MockTransport(lambda request: httpx.Response(200, json=["ok"])))
    with pytest.raises(ApiError) as excinfo:
        client.transcribe(b"x")
    assert "expected a JSON object" in str(excinfo.value)


def test_summary_mode_is_forwarded(tmp_path):
    def handler(request):
        assert request.url.params["mode"] == "summary"
        return httpx.Response(200, json={"transcription": "a short summary", "mode": "summary"})

    client = make_client(tmp_path, httpx.MockTransport(handler))
    assert client.transcribe(b"x", "gemini", mode="summary")["mode"] == "summary"
