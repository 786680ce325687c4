from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from meeting_pipeline.core.db import session_scope
from meeting_pipeline.core.settings import Settings
from meeting_pipeline.models import (
    ActionItem,
    ActionItemStatus,
    Meeting,
    MeetingNotes,
    Speaker,
    TranscriptSegment,
)
from meeting_pipeline.services.notes import NoteSegment, NotesOutput
from meeting_pipeline.services.notes_provider import create_notes_backend, generate_meeting_notes

log = logging.getLogger(__name__)


def load_note_segments(db: Session, meeting_id: str) -> list[NoteSegment]:
    """Segments ordered by start time, with the speaker's best available name."""
    speaker_name = func.coalesce(Speaker.display_name, Speaker.label, "Unknown")
    rows = db.execute(
        select(TranscriptSegment.id, TranscriptSegment.text, speaker_name)
        .outerjoin(Speaker, Speaker.id == TranscriptSegment.speaker_id)
        .where(TranscriptSegment.meeting_id == meeting_id)
        .order_by(TranscriptSegment.start_ms.asc())
    ).all()
    return [NoteSegment(id=row[0], text=row[1], speaker=row[2]) for row in rows]


def save_notes(db: Session, meeting_id: str, notes: NotesOutput) -> None:
    """Upsert the notes row and replace every action item for the meeting."""
    now = datetime.now(timezone.utc)
    existing = db.scalars(select(MeetingNotes).where(MeetingNotes.meeting_id == meeting_id)).first()
    if existing is not None:
        existing.summary_md = notes.summary
        existing.key_points = list(notes.key_points)
        existing.updated_at = now
    else:
        db.add(
            MeetingNotes(
                meeting_id=meeting_id,
                summary_md=notes.summary,
                key_points=list(notes.key_points),
                updated_at=now,
            )
        )

    db.execute(delete(ActionItem).where(ActionItem.meeting_id == meeting_id))
    for item in notes.action_items:
        db.add(
            ActionItem(
                meeting_id=meeting_id,
                owner_name=item.owner_name or None,
                task=item.task,
                status=ActionItemStatus.open.value,
                source_segment_id=item.source_segment_id or None,
            )
        )


def process_meeting_notes(meeting_id: str, settings: Settings | None = None) -> NotesOutput | None:
    """Regenerate notes + action items for a meeting from its stored transcript."""
    with session_scope() as db:
        if db.get(Meeting, meeting_id) is None:
            log.warning("process_meeting_notes: meeting not found", extra={"meeting_id": meeting_id})
            return None
        segments = load_note_segments(db, meeting_id)

    notes = generate_meeting_notes(segments, create_notes_backend(settings))

    with session_scope() as db:
        save_notes(db, meeting_id, notes)

    log.info(
        "process_meeting_notes: finished",
        extra={
            "meeting_id": meeting_id,
            "segments": len(segments),
            "key_points": len(notes.key_points),
            "action_items": len(notes.action_items),
        },
    )
    return notes
