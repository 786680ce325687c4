from __future__ import annotations

import json

import httpx
import pytest

from meeting_pipeline.core.errors import (
    ConfigurationError,
    ProviderConfigurationError,
    ProviderError,
    ProviderUnavailableError,
    ProviderValidationError,
    TransientInfrastructureError,
)
from meeting_pipeline.core.settings import Settings
from meeting_pipeline.services.transcription import (
    LocalTranscriptionProvider,
    ManagedTranscriptionProvider,
    MockTranscriptionProvider,
    ProviderSegment,
    create_transcription_provider,
)
from meeting_pipeline.services.transcription.base import checked_segments, round_ms
from meeting_pipeline.services.transcription.managed import seconds_to_ms


def _managed(storage, handler, **overrides) -> ManagedTranscriptionProvider:
    settings = Settings(TRANSCRIPTION_PROVIDER="managed", DEEPGRAM_API_KEY="dg-key", **overrides)
    return ManagedTranscriptionProvider(settings, storage, transport=httpx.MockTransport(handler))


def _local(storage, handler, **overrides) -> LocalTranscriptionProvider:
    values = {
        "TRANSCRIPTION_PROVIDER": "local",
        "LOCAL_ASR_ENDPOINT": "http://asr.internal/transcribe",
        "LOCAL_ASR_API_KEY": "local-key",
    }
    values.update(overrides)
    return LocalTranscriptionProvider(Settings(**values), storage, transport=httpx.MockTransport(handler))


# --- mock -------------------------------------------------------------------


def test_mock_provider_returns_fixed_three_segments():
    segments = MockTranscriptionProvider().transcribe_and_diarize("uploads/anything")
    assert [s.speaker_label for s in segments] == ["Speaker 1", "Speaker 2", "Speaker 1"]
    assert [(s.start_ms, s.end_ms) for s in segments] == [(0, 6500), (6800, 11500), (11800, 18000)]


# --- managed ----------------------------------------------------------------


def test_managed_maps_utterances_to_segments(storage):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(
            200,
            json={
                "results": {
                    "utterances": [
                        {"start": 0.5, "end": 2.0006, "transcript": "Hi all.", "speaker": 0, "confidence": 0.9},
                        {"start": 2.25, "end": 4.0, "transcript": "Morning.", "speaker": 1},
                    ]
                }
            },
        )

    segments = _managed(storage, handler).transcribe_and_diarize("uploads/a.m4a")

    assert segments == [
        ProviderSegment("Speaker 1", 500, 2001, "Hi all.", 0.9),
        ProviderSegment("Speaker 2", 2250, 4000, "Morning.", None),
    ]
    request = seen["request"]
    assert request.headers["Authorization"] == "Token dg-key"
    assert json.loads(request.content) == {"url": "https://signed.example/uploads/a.m4a?sig=abc"}
    params = request.url.params
    assert params["diarize"] == "true"
    assert params["punctuate"] == "true"
    assert params["smart_format"] == "true"
    assert params["utterances"] == "true"
    assert params["model"] == "nova-2"
    assert "language" not in params
    assert storage.presigned == ["uploads/a.m4a"]


def test_managed_passes_language_when_configured(storage):
    seen = {}

    def handler(request):
        seen["params"] = request.url.params
        return httpx.Response(200, json={"results": {"utterances": []}})

    assert _managed(storage, handler, DEEPGRAM_LANGUAGE="de").transcribe_and_diarize("k") == []
    assert seen["params"]["language"] == "de"


def test_managed_without_utterances_returns_empty(storage):
    segments = _managed(storage, lambda r: httpx.Response(200, json={})).transcribe_and_diarize("k")
    assert segments == []


def test_managed_without_api_key_is_configuration_error(storage):
    provider = ManagedTranscriptionProvider(Settings(DEEPGRAM_API_KEY=None), storage)
    with pytest.raises(ProviderConfigurationError) as exc_info:
        provider.transcribe_and_diarize("k")
    assert isinstance(exc_info.value, ConfigurationError)
    assert storage.presigned == []


def test_managed_non_success_status_is_unavailable(storage):
    provider = _managed(storage, lambda r: httpx.Response(502, text="bad gateway"))
    with pytest.raises(ProviderUnavailableError) as exc_info:
        provider.transcribe_and_diarize("k")
    assert exc_info.value.status_code == 502
    assert isinstance(exc_info.value, TransientInfrastructureError)


def test_managed_malformed_payload_is_validation_error(storage):
    provider = _managed(
        storage, lambda r: httpx.Response(200, json={"results": {"utterances": [{"start": "soon"}]}})
    )
    with pytest.raises(ProviderValidationError):
        provider.transcribe_and_diarize("k")


def test_seconds_to_ms_rounds_half_up():
    assert seconds_to_ms(0.0) == 0
    assert seconds_to_ms(1.5) == 1500
    assert seconds_to_ms(0.0004) == 0
    assert seconds_to_ms(0.0006) == 1


# --- local ------------------------------------------------------------------


def test_local_posts_audio_url_with_bearer_auth(storage):
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(
            200,
            json={
                "segments": [
                    {"speakerLabel": "Alice", "startMs": 0, "endMs": 900, "text": "Hi", "confidence": 0.7},
                    {"speakerLabel": "Bob", "startMs": 950, "endMs": 2000, "text": "Hello"},
                ]
            },
        )

    segments = _local(storage, handler).transcribe_and_diarize("uploads/b.wav")

    assert segments == [
        ProviderSegment("Alice", 0, 900, "Hi", 0.7),
        ProviderSegment("Bob", 950, 2000, "Hello", None),
    ]
    request = seen["request"]
    assert str(request.url) == "http://asr.internal/transcribe"
    assert request.headers["Authorization"] == "Bearer local-key"
    assert json.loads(request.content) == {"audioUrl": "https://signed.example/uploads/b.wav?sig=abc"}


def test_local_without_api_key_sends_no_auth_header(storage):
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        return httpx.Response(200, json={"segments": []})

    _local(storage, handler, LOCAL_ASR_API_KEY=None).transcribe_and_diarize("k")
    assert "Authorization" not in seen["headers"]


def test_local_without_endpoint_is_configuration_error(storage):
    provider = LocalTranscriptionProvider(Settings(LOCAL_ASR_ENDPOINT=None), storage)
    with pytest.raises(ProviderConfigurationError):
        provider.transcribe_and_diarize("k")


def test_local_timeout_is_unavailable(storage):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderUnavailableError, match="timed out"):
        _local(storage, handler, LOCAL_ASR_TIMEOUT_MS=10).transcribe_and_diarize("k")


def test_local_non_success_is_unavailable(storage):
    with pytest.raises(ProviderUnavailableError):
        _local(storage, lambda r: httpx.Response(503, text="busy")).transcribe_and_diarize("k")


def test_local_non_json_body_is_validation_error(storage):
    with pytest.raises(ProviderValidationError):
        _local(storage, lambda r: httpx.Response(200, text="<html>")).transcribe_and_diarize("k")


def test_local_malformed_segments_is_validation_error(storage):
    handler = lambda r: httpx.Response(200, json={"segments": [{"text": "no timing"}]})  # noqa: E731
    with pytest.raises(ProviderError):
        _local(storage, handler).transcribe_and_diarize("k")


def test_local_rounds_fractional_milliseconds(storage):
    def handler(request):
        return httpx.Response(
            200,
            json={"segments": [{"speakerLabel": "A", "startMs": 999.5, "endMs": 1500.4, "text": "Hi"}]},
        )

    segments = _local(storage, handler).transcribe_and_diarize("k")

    assert [(s.start_ms, s.end_ms) for s in segments] == [(1000, 1500)]


def test_local_inverted_range_is_validation_error(storage):
    def handler(request):
        return httpx.Response(
            200,
            json={"segments": [{"speakerLabel": "A", "startMs": 50, "endMs": 20, "text": "Hi"}]},
        )

    with pytest.raises(ProviderValidationError, match="invalid time range"):
        _local(storage, handler).transcribe_and_diarize("k")


def test_managed_negative_start_is_validation_error(storage):
    def handler(request):
        return httpx.Response(
            200,
            json={"results": {"utterances": [{"start": -0.5, "end": 1.0, "transcript": "x", "speaker": 0}]}},
        )

    with pytest.raises(ProviderValidationError):
        _managed(storage, handler).transcribe_and_diarize("k")


def test_round_ms_and_range_checks():
    assert round_ms(1500.4) == 1500
    assert round_ms(1500.5) == 1501
    assert round_ms(0.0) == 0

    ok = [ProviderSegment("A", 0, 0, "instant"), ProviderSegment("A", 5, 9, "short")]
    assert checked_segments("Test", ok) == ok
    with pytest.raises(ProviderValidationError):
        checked_segments("Test", [ProviderSegment("A", -1, 9, "early")])


# --- selection --------------------------------------------------------------


@pytest.mark.parametrize(
    "name, cls",
    [
        ("mock", MockTranscriptionProvider),
        ("managed", ManagedTranscriptionProvider),
        ("local", LocalTranscriptionProvider),
    ],
)
def test_provider_selection_is_driven_by_settings(name, cls, storage):
    provider = create_transcription_provider(Settings(TRANSCRIPTION_PROVIDER=name), storage)
    assert isinstance(provider, cls)
    assert provider.name == name
