from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

SUMMARY_HEADING = "## Summary"
SUMMARY_MAX_CHARS = 700
EMPTY_SUMMARY = f"{SUMMARY_HEADING}\nNo transcript available."
MAX_KEY_POINTS = 5
MAX_ACTION_ITEMS = 5

ACTION_CUE = re.compile(r"\b(will|todo|action|next|by)\b", re.IGNORECASE)


@dataclass(frozen=True)
class NoteSegment:
    id: str
    speaker: str
    text: str


@dataclass(frozen=True)
class NoteActionItem:
    task: str
    owner_name: Optional[str] = None
    source_segment_id: Optional[str] = None


@dataclass(frozen=True)
class NotesOutput:
    summary: str
    key_points: list[str] = field(default_factory=list)
    action_items: list[NoteActionItem] = field(default_factory=list)


def generate_summary(segments: Sequence[NoteSegment]) -> NotesOutput:
    """
    Heuristic notes, no external dependency.

        Summary:      "## Summary\\n" + joined "speaker: text", cut at 700 chars
        Key points:   first five segment texts
        Action items: segments with a lexical cue (will/todo/action/next/by), max five
    """
    joined = " ".join(f"{s.speaker}: {s.text}" for s in segments)
    if joined:
        body = joined[:SUMMARY_MAX_CHARS]
        if len(joined) > SUMMARY_MAX_CHARS:
            body += "..."
        summary = f"{SUMMARY_HEADING}\n{body}"
    else:
        summary = EMPTY_SUMMARY

    key_points = [s.text for s in segments[:MAX_KEY_POINTS]]

    action_items = [
        NoteActionItem(task=s.text, owner_name=s.speaker, source_segment_id=s.id)
        for s in segments
        if ACTION_CUE.search(s.text)
    ][:MAX_ACTION_ITEMS]

    return NotesOutput(summary=summary, key_points=key_points, action_items=action_items)
