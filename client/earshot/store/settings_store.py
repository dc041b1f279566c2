"""Persistent settings storage for the backend connection and VAD tuning."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path

LOGGER = logging.getLogger("earshot.settings")


@dataclass(slots=True)
class AppSettings:
    server_url: str = "http://localhost:6544"
    api_key: str = ""
    provider: str = "whisper"
    silence_threshold_db: float = -50.0
    silence_timeout_ms: int = 800
    max_segment_length_ms: int = 15000


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._settings = self._load()

    def _load(self) -> AppSettings:
        settings = AppSettings()
        if not self.path.exists():
            return settings
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
            raw = {}
        if not isinstance(raw, dict):
            raw = {}
        settings.server_url = str(raw.get("server_url", settings.server_url))
        settings.api_key = str(raw.get("api_key", ""))
        settings.provider = str(raw.get("provider", settings.provider))
        settings.silence_threshold_db = float(raw.get("silence_threshold_db", settings.silence_threshold_db))
        settings.silence_timeout_ms = int(raw.get("silence_timeout_ms", settings.silence_timeout_ms))
        settings.max_segment_length_ms = int(raw.get("max_segment_length_ms", settings.max_segment_length_ms))
        return settings

    def get(self) -> AppSettings:
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        for key, value in kwargs.items():
            if not hasattr(self._settings, key):
                continue
            current = getattr(self._settings, key)
            if isinstance(current, float):
                setattr(self._settings, key, float(value))
            elif isinstance(current, int):
                setattr(self._settings, key, int(value))
            else:
                setattr(self._settings, key, value or "")
        self._persist()
        return self._settings

    def _persist(self) -> None:
        self.path.write_text(json.dumps(asdict(self._settings)), encoding="utf-8")


__all__ = ["AppSettings", "SettingsStore"]
