from __future__ import annotations

from meeting_pipeline.core.settings import Settings, get_settings
from meeting_pipeline.services.storage import Storage, choose_storage

from .base import ProviderSegment, TranscriptionProvider
from .local import LocalTranscriptionProvider
from .managed import ManagedTranscriptionProvider
from .mock import MockTranscriptionProvider


def create_transcription_provider(
    settings: Settings | None = None,
    storage: Storage | None = None,
) -> TranscriptionProvider:
    """Pick the backend named by TRANSCRIPTION_PROVIDER."""
    settings = settings or get_settings()

    if settings.TRANSCRIPTION_PROVIDER == "mock":
        return MockTranscriptionProvider()

    storage = storage or choose_storage(settings)
    if settings.TRANSCRIPTION_PROVIDER == "local":
        return LocalTranscriptionProvider(settings, storage)
    return ManagedTranscriptionProvider(settings, storage)


__all__ = [
    "LocalTranscriptionProvider",
    "ManagedTranscriptionProvider",
    "MockTranscriptionProvider",
    "ProviderSegment",
    "TranscriptionProvider",
    "create_transcription_provider",
]
