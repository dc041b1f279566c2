"""Earshot client: silence-driven speech segmentation and transcription upload."""

__version__ = "0.1.0"
