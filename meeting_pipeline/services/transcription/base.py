from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import httpx

from meeting_pipeline.core.errors import ProviderUnavailableError, ProviderValidationError


@dataclass(frozen=True)
class ProviderSegment:
    """Normalized output of a transcription backend."""

    speaker_label: str
    start_ms: int
    end_ms: int
    text: str
    confidence: Optional[float] = None


def round_ms(value: float) -> int:
    """Whole milliseconds, rounding half up."""
    return int(math.floor(value + 0.5))


def checked_segments(backend: str, segments: Sequence[ProviderSegment]) -> list[ProviderSegment]:
    """Reject negative or inverted time ranges before they reach the database."""
    for i, s in enumerate(segments):
        if s.start_ms < 0 or s.end_ms < s.start_ms:
            raise ProviderValidationError(
                f"{backend} segment {i} has an invalid time range: {s.start_ms}-{s.end_ms} ms"
            )
    return list(segments)


class TranscriptionProvider(Protocol):
    name: str

    def transcribe_and_diarize(self, audio_reference: str) -> list[ProviderSegment]:
        """Return diarized segments in playback order, or raise ProviderError."""
        ...


def post_json(
    client: httpx.Client,
    url: str,
    *,
    backend: str,
    json: dict[str, Any],
    params: Optional[dict[str, str]] = None,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    """POST a JSON body and return the decoded JSON response.

    Transport failures, timeouts and non-2xx answers become
    ProviderUnavailableError; an undecodable body becomes ProviderValidationError.
    """
    try:
        r = client.post(url, json=json, params=params, headers=headers)
    except httpx.TimeoutException as exc:
        raise ProviderUnavailableError(f"{backend} request timed out: {exc}") from exc
    except httpx.HTTPError as exc:
        raise ProviderUnavailableError(f"{backend} request failed: {exc}") from exc

    if not r.is_success:
        raise ProviderUnavailableError(
            f"{backend} transcription failed: {r.status_code} {r.text[:500]}",
            status_code=r.status_code,
        )

    try:
        return r.json()
    except ValueError as exc:
        raise ProviderValidationError(f"{backend} returned a non-JSON body") from exc
