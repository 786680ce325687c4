from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from meeting_pipeline.core.errors import ProviderConfigurationError, ProviderValidationError
from meeting_pipeline.core.settings import Settings
from meeting_pipeline.services.storage import Storage

from .base import ProviderSegment, checked_segments, post_json, round_ms

log = logging.getLogger(__name__)


def seconds_to_ms(seconds: float) -> int:
    """Seconds to whole milliseconds, rounding half up."""
    return round_ms(seconds * 1000)


class DeepgramUtterance(BaseModel):
    start: float
    end: float
    transcript: str
    speaker: int = 0
    confidence: Optional[float] = None


class DeepgramResults(BaseModel):
    utterances: list[DeepgramUtterance] = []


class DeepgramResponse(BaseModel):
    results: Optional[DeepgramResults] = None


class ManagedTranscriptionProvider:
    """Deepgram pre-recorded API with diarization, fed a signed download URL."""

    name = "managed"

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self._transport = transport

    def _query(self) -> dict[str, str]:
        params = {
            "model": self.settings.DEEPGRAM_MODEL,
            "diarize": "true",
            "punctuate": "true",
            "smart_format": "true",
            "utterances": "true",
        }
        if self.settings.DEEPGRAM_LANGUAGE:
            params["language"] = self.settings.DEEPGRAM_LANGUAGE
        return params

    def transcribe_and_diarize(self, audio_reference: str) -> list[ProviderSegment]:
        api_key = self.settings.DEEPGRAM_API_KEY
        if not api_key:
            raise ProviderConfigurationError(
                "Missing DEEPGRAM_API_KEY for managed transcription provider."
            )

        audio_url = self.storage.presign_download(audio_reference)

        with httpx.Client(
            timeout=self.settings.DEEPGRAM_TIMEOUT_SEC, transport=self._transport
        ) as client:
            body = post_json(
                client,
                self.settings.DEEPGRAM_ENDPOINT,
                backend="Deepgram",
                json={"url": audio_url},
                params=self._query(),
                headers={"Authorization": f"Token {api_key}"},
            )

        try:
            data = DeepgramResponse.model_validate(body)
        except ValidationError as exc:
            raise ProviderValidationError(f"unexpected Deepgram payload: {exc}") from exc

        utterances = data.results.utterances if data.results else []
        log.info(
            "managed transcription finished",
            extra={"audio_key": audio_reference, "utterances": len(utterances)},
        )
        return checked_segments(
            "Deepgram",
            [
                ProviderSegment(
                    speaker_label=f"Speaker {u.speaker + 1}",
                    start_ms=seconds_to_ms(u.start),
                    end_ms=seconds_to_ms(u.end),
                    text=u.transcript,
                    confidence=u.confidence,
                )
                for u in utterances
            ],
        )
