"""In-memory activity feed mirrored to the logging module."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Deque, List


class LogBuffer:
    """Keeps the most recent activity lines for display."""

    def __init__(self, max_lines: int = 200, *, logger_name: str = "earshot.activity") -> None:
        self._lines: Deque[str] = deque(maxlen=max(1, int(max_lines)))
        self._lock = threading.Lock()
        self._logger = logging.getLogger(logger_name)

    def add(self, message: str, level: int = logging.INFO) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        with self._lock:
            self._lines.append(f"[{stamp}] {message}")
        self._logger.log(level, message)

    def get(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)


__all__ = ["LogBuffer"]
