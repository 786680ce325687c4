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


class LocalAsrSegment(BaseModel):
    speakerLabel: str
    startMs: float
    endMs: float
    text: str
    confidence: Optional[float] = None


class LocalAsrResponse(BaseModel):
    segments: list[LocalAsrSegment] = []


class LocalTranscriptionProvider:
    """Self-hosted ASR endpoint that accepts {"audioUrl": ...}."""

    name = "local"

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self._transport = transport

    def transcribe_and_diarize(self, audio_reference: str) -> list[ProviderSegment]:
        endpoint = self.settings.LOCAL_ASR_ENDPOINT
        if not endpoint:
            raise ProviderConfigurationError(
                "Missing LOCAL_ASR_ENDPOINT for local transcription provider."
            )

        audio_url = self.storage.presign_download(audio_reference)

        headers: dict[str, str] = {}
        if self.settings.LOCAL_ASR_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.LOCAL_ASR_API_KEY}"

        timeout = self.settings.LOCAL_ASR_TIMEOUT_MS / 1000
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            body = post_json(
                client,
                endpoint,
                backend="Local ASR",
                json={"audioUrl": audio_url},
                headers=headers,
            )

        try:
            payload = LocalAsrResponse.model_validate(body)
        except ValidationError as exc:
            raise ProviderValidationError(f"unexpected local ASR payload: {exc}") from exc

        log.info(
            "local transcription finished",
            extra={"audio_key": audio_reference, "segments": len(payload.segments)},
        )
        return checked_segments(
            "Local ASR",
            [
                ProviderSegment(
                    speaker_label=s.speakerLabel,
                    start_ms=round_ms(s.startMs),
                    end_ms=round_ms(s.endMs),
                    text=s.text,
                    confidence=s.confidence,
                )
                for s in payload.segments
            ],
        )
