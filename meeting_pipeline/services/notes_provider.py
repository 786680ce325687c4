from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import httpx
from pydantic import BaseModel, Field

from meeting_pipeline.core.settings import Settings, get_settings
from meeting_pipeline.services.notes import (
    NoteActionItem,
    NoteSegment,
    NotesOutput,
    generate_summary,
)

log = logging.getLogger(__name__)

MAX_PROMPT_SEGMENTS = 400

PROMPT_PREAMBLE = (
    "You are an assistant generating concise meeting notes.",
    "Return strict JSON only with keys: summaryMd, keyPoints, actionItems.",
    "actionItems must be an array of objects with keys: task, ownerName.",
    "Do not include markdown code fences.",
)


class LLMActionItem(BaseModel):
    task: str = Field(min_length=1)
    ownerName: str = "Unassigned"


class LLMNotesPayload(BaseModel):
    summaryMd: str = Field(min_length=1)
    keyPoints: list[str] = Field(default_factory=list)
    actionItems: list[LLMActionItem] = Field(default_factory=list)

    def to_notes(self) -> NotesOutput:
        return NotesOutput(
            summary=self.summaryMd,
            key_points=list(self.keyPoints),
            action_items=[
                NoteActionItem(task=item.task, owner_name=item.ownerName)
                for item in self.actionItems
            ],
        )


@dataclass(frozen=True)
class NotesOutcome:
    """Result of an LLM notes attempt: either notes or an error message."""

    backend: str
    notes: Optional[NotesOutput] = None
    error: Optional[str] = None


class NotesBackend(Protocol):
    name: str

    def generate(self, segments: Sequence[NoteSegment]) -> NotesOutcome: ...


def format_transcript_for_prompt(segments: Sequence[NoteSegment]) -> str:
    return "\n".join(
        f"[{i}] {s.speaker}: {s.text}"
        for i, s in enumerate(segments[:MAX_PROMPT_SEGMENTS], start=1)
    )


def build_prompt(segments: Sequence[NoteSegment]) -> str:
    return "\n\n".join([*PROMPT_PREAMBLE, "Transcript:", format_transcript_for_prompt(segments)])


def parse_notes_json(raw: str | None) -> NotesOutput:
    """Validate the model's JSON answer. Raises ValueError on any mismatch."""
    return LLMNotesPayload.model_validate(json.loads(raw or "{}")).to_notes()


class OllamaNotesBackend:
    name = "ollama"

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def _request(self, prompt: str) -> NotesOutput:
        body = {
            "model": self.settings.OLLAMA_MODEL,
            "prompt": prompt,
            "stream": False,
            "format": "json",
        }
        timeout = self.settings.OLLAMA_TIMEOUT_MS / 1000
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            r = client.post(self.settings.OLLAMA_ENDPOINT, json=body)
        if not r.is_success:
            raise RuntimeError(f"Ollama notes failed: {r.status_code} {r.text[:500]}")
        raw: dict[str, Any] = r.json()
        return parse_notes_json(raw.get("response"))

    def generate(self, segments: Sequence[NoteSegment]) -> NotesOutcome:
        try:
            return NotesOutcome(backend=self.name, notes=self._request(build_prompt(segments)))
        except Exception as exc:  # noqa: BLE001
            return NotesOutcome(backend=self.name, error=f"{type(exc).__name__}: {exc}")


class OpenAINotesBackend:
    name = "openai"

    def __init__(self, settings: Settings, client: Any = None):
        self.settings = settings
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.settings.OPENAI_API_KEY:
                raise RuntimeError("Missing OPENAI_API_KEY for openai notes provider.")
            from openai import OpenAI

            self._client = OpenAI(
                api_key=self.settings.OPENAI_API_KEY,
                timeout=self.settings.OPENAI_TIMEOUT_MS / 1000,
                max_retries=0,
            )
        return self._client

    def _request(self, prompt: str) -> NotesOutput:
        resp = self._get_client().chat.completions.create(
            model=self.settings.LLM_MODEL,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.2,
            response_format={"type": "json_object"},
        )
        return parse_notes_json(resp.choices[0].message.content)

    def generate(self, segments: Sequence[NoteSegment]) -> NotesOutcome:
        try:
            return NotesOutcome(backend=self.name, notes=self._request(build_prompt(segments)))
        except Exception as exc:  # noqa: BLE001
            return NotesOutcome(backend=self.name, error=f"{type(exc).__name__}: {exc}")


def create_notes_backend(settings: Settings | None = None) -> NotesBackend | None:
    """LLM backend named by LOCAL_NOTES_PROVIDER, or None for heuristic-only."""
    settings = settings or get_settings()
    if settings.LOCAL_NOTES_PROVIDER == "ollama":
        return OllamaNotesBackend(settings)
    if settings.LOCAL_NOTES_PROVIDER == "openai":
        return OpenAINotesBackend(settings)
    return None


def generate_meeting_notes(
    segments: Sequence[NoteSegment],
    backend: NotesBackend | None = None,
) -> NotesOutput:
    """
    Notes for a transcript. Uses the LLM backend when one is given and falls
    back to the heuristic summary on any backend error; never raises because
    of the backend.
    """
    if backend is None:
        return generate_summary(segments)

    outcome = backend.generate(segments)
    if outcome.notes is not None:
        return outcome.notes

    log.warning(
        "LLM notes generation failed, falling back to heuristic notes",
        extra={"backend": outcome.backend, "error": outcome.error},
    )
    return generate_summary(segments)
