"""Append-only transcript archive for transcribed segments."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import List


class TranscriptStore:
    """Persist segment transcripts as SRT cues timed from the session start."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._counter_path = self.path.with_suffix(self.path.suffix + ".idx")
        self._lock = threading.Lock()

    def append(self, *, segment_index: int, text: str, start_ms: float, end_ms: float) -> int:
        cleaned = self._normalize(text) or "(no transcription)"
        with self._lock:
            entry_index = self._reserve_index()
            lines = [
                str(entry_index),
                f"{self._format_timestamp(start_ms)} --> {self._format_timestamp(max(start_ms, end_ms))}",
                f"#{segment_index}: {cleaned}",
                "",
            ]
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write("\n".join(lines) + "\n")
        return entry_index

    def read_texts(self) -> List[str]:
        if not self.path.exists():
            return []
        texts: List[str] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            match = re.match(r"^#\d+: (.*)$", line)
            if match:
                texts.append(match.group(1))
        return texts

    def _reserve_index(self) -> int:
        current = 0
        if self._counter_path.exists():
            try:
                current = int(self._counter_path.read_text().strip() or "0")
            except ValueError:
                current = 0
        self._counter_path.write_text(str(current + 1), encoding="utf-8")
        return current + 1

    @staticmethod
    def _format_timestamp(offset_ms: float) -> str:
        total = max(0, int(round(offset_ms)))
        hours, rem = divmod(total, 3_600_000)
        minutes, rem = divmod(rem, 60_000)
        seconds, millis = divmod(rem, 1000)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"

    @staticmethod
    def _normalize(text: str) -> str:
        return re.sub(r"\s+", " ", text or "").strip()


__all__ = ["TranscriptStore"]
