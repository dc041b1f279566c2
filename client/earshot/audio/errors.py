"""Exceptions raised or reported by the recording engine."""

from __future__ import annotations


class RecorderError(Exception):
    pass


class CaptureStartError(RecorderError):
    """The capture device could not be opened (missing backend, permission denied)."""


class CaptureFault(RecorderError):
    """The capture device failed while a session was running."""


class SegmentAssemblyError(RecorderError):
    """Accumulated chunk data could not be turned into a segment."""


class EngineDisposedError(RecorderError):
    pass


__all__ = [
    "CaptureFault",
    "CaptureStartError",
    "EngineDisposedError",
    "RecorderError",
    "SegmentAssemblyError",
]
