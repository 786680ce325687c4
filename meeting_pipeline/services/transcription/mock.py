from __future__ import annotations

from .base import ProviderSegment

MOCK_SEGMENTS = (
    ProviderSegment(
        speaker_label="Speaker 1",
        start_ms=0,
        end_ms=6500,
        text="Welcome everyone. Let's align on launch timelines.",
        confidence=0.91,
    ),
    ProviderSegment(
        speaker_label="Speaker 2",
        start_ms=6800,
        end_ms=11500,
        text="Engineering can deliver the API by next Friday.",
        confidence=0.88,
    ),
    ProviderSegment(
        speaker_label="Speaker 1",
        start_ms=11800,
        end_ms=18000,
        text="Great, let's capture action items and owners.",
        confidence=0.93,
    ),
)


class MockTranscriptionProvider:
    """Fixed fixture for local development and tests."""

    name = "mock"

    def transcribe_and_diarize(self, audio_reference: str) -> list[ProviderSegment]:
        return list(MOCK_SEGMENTS)
