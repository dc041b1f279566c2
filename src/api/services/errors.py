"""Errors raised by transcription providers."""

from __future__ import annotations


class TranscriptionError(RuntimeError):
    """A provider could not turn the upload into text."""


class ProviderUnavailable(TranscriptionError):
    """The provider is not configured or its library is missing."""
