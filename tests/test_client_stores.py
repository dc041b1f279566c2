from client.earshot.services.logger import LogBuffer
from client.earshot.store.settings_store import SettingsStore
from client.earshot.store.transcript_store import TranscriptStore


def test_settings_store_roundtrip(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    assert store.get().server_url == "http://localhost:6544"
    assert store.get().provider == "whisper"

    store.update(server_url="https://example.com", api_key="abc", silence_timeout_ms="1200", bogus=1)
    data = path.read_text()
    assert "example.com" in data
    assert "bogus" not in data

    store2 = SettingsStore(path)
    assert store2.get().api_key == "abc"
    assert store2.get().silence_timeout_ms == 1200


def test_corrupt_settings_fall_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    assert SettingsStore(path).get().silence_threshold_db == -50.0


def test_transcript_store_appends_cues(tmp_path):
    srt_path = tmp_path / "transcripts" / "earshot.srt"
    store = TranscriptStore(srt_path)
    assert store.append(segment_index=0, text="Hello   world.", start_ms=0, end_ms=2000) == 1
    assert store.append(segment_index=1, text="  ", start_ms=3_723_004, end_ms=3_725_000) == 2

    content = srt_path.read_text(encoding="utf-8")
    assert "00:00:00,000 --> 00:00:02,000" in content
    assert "01:02:03,004 --> 01:02:05,000" in content
    assert store.read_texts() == ["Hello world.", "(no transcription)"]

    # numbering continues across instances
    assert TranscriptStore(srt_path).append(segment_index=2, text="again", start_ms=0, end_ms=1) == 3


def test_log_buffer_keeps_recent_lines():
    log = LogBuffer(max_lines=2)
    for message in ("one", "two", "three"):
        log.add(message)
    lines = log.get()
    assert len(log) == 2
    assert lines[0].endswith("two")
    assert lines[1].endswith("three")
    log.clear()
    assert log.get() == []
