"""Synchronous observer fan-out for recorder events."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from .types import RecorderEvent

LOGGER = logging.getLogger("earshot.events")

Handler = Callable[[Any], Any]


class EventEmitter:
    """Ordered handler lists per event kind.

    Handlers run in registration order on the emitting call stack. A handler
    that raises is logged and skipped; the rest still receive the event.
    """

    def __init__(self) -> None:
        self._handlers: Dict[RecorderEvent, List[Handler]] = {kind: [] for kind in RecorderEvent}

    def on(self, kind: RecorderEvent, handler: Handler) -> Handler:
        handlers = self._handlers.setdefault(kind, [])
        if handler not in handlers:
            handlers.append(handler)
        return handler

    def off(self, kind: RecorderEvent, handler: Handler) -> None:
        handlers = self._handlers.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, kind: RecorderEvent) -> List[Handler]:
        return list(self._handlers.get(kind, []))

    def emit(self, kind: RecorderEvent, payload: Any) -> int:
        delivered = 0
        for handler in list(self._handlers.get(kind, [])):
            try:
                handler(payload)
            except Exception:
                LOGGER.exception("Error in %s event handler %r", kind.value, handler)
            else:
                delivered += 1
        return delivered

    def clear(self) -> None:
        for handlers in self._handlers.values():
            handlers.clear()


__all__ = ["EventEmitter", "Handler"]
