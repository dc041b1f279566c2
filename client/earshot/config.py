"""Recorder configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .store.settings_store import AppSettings


@dataclass(slots=True, frozen=True)
class RecorderConfig:
    silence_threshold_db: float = -50.0
    silence_timeout_ms: int = 800
    max_segment_length_ms: int = 15000
    sample_rate_hz: int = 16000
    analysis_window_size: int = 2048
    channels: int = 1
    log_history: int = 200

    @property
    def block_duration_ms(self) -> float:
        return self.analysis_window_size * 1000.0 / self.sample_rate_hz

    def validate(self) -> "RecorderConfig":
        if self.silence_timeout_ms <= 0:
            raise ValueError("silence_timeout_ms must be positive")
        if self.max_segment_length_ms <= 0:
            raise ValueError("max_segment_length_ms must be positive")
        if self.sample_rate_hz <= 0:
            raise ValueError("sample_rate_hz must be positive")
        if self.analysis_window_size <= 0:
            raise ValueError("analysis_window_size must be positive")
        if self.channels <= 0:
            raise ValueError("channels must be positive")
        return self

    def with_overrides(self, **kwargs) -> "RecorderConfig":
        values = {key: value for key, value in kwargs.items() if value is not None}
        return replace(self, **values).validate()

    @classmethod
    def from_env(cls) -> "RecorderConfig":
        base = cls()
        return cls(
            silence_threshold_db=float(os.getenv("EARSHOT_SILENCE_THRESHOLD_DB", base.silence_threshold_db)),
            silence_timeout_ms=int(os.getenv("EARSHOT_SILENCE_TIMEOUT_MS", base.silence_timeout_ms)),
            max_segment_length_ms=int(os.getenv("EARSHOT_MAX_SEGMENT_LENGTH_MS", base.max_segment_length_ms)),
            sample_rate_hz=int(os.getenv("EARSHOT_SAMPLE_RATE", base.sample_rate_hz)),
            analysis_window_size=int(os.getenv("EARSHOT_WINDOW_SIZE", base.analysis_window_size)),
            channels=int(os.getenv("EARSHOT_CHANNELS", base.channels)),
            log_history=int(os.getenv("EARSHOT_LOG_HISTORY", base.log_history)),
        ).validate()

    @classmethod
    def from_settings(cls, settings: "AppSettings", base: "RecorderConfig | None" = None) -> "RecorderConfig":
        base = base or cls()
        return base.with_overrides(
            silence_threshold_db=float(settings.silence_threshold_db),
            silence_timeout_ms=int(settings.silence_timeout_ms),
            max_segment_length_ms=int(settings.max_segment_length_ms),
        )


CONFIG = RecorderConfig.from_env()

__all__ = ["CONFIG", "RecorderConfig"]
