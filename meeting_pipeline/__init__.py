"""Async job pipeline: meeting audio -> diarized transcript -> notes + action items."""

__version__ = "0.1.0"
