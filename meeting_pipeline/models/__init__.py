from __future__ import annotations

import uuid

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def new_id() -> str:
    return str(uuid.uuid4())


# Import ORM models so that their tables are registered on Base.metadata.
from meeting_pipeline.models.meeting import Meeting, MeetingStatus  # noqa: E402
from meeting_pipeline.models.speaker import Speaker  # noqa: E402
from meeting_pipeline.models.transcript_segment import TranscriptSegment  # noqa: E402
from meeting_pipeline.models.meeting_notes import MeetingNotes  # noqa: E402
from meeting_pipeline.models.action_item import ActionItem, ActionItemStatus  # noqa: E402

__all__ = [
    "ActionItem",
    "ActionItemStatus",
    "Base",
    "Meeting",
    "MeetingNotes",
    "MeetingStatus",
    "Speaker",
    "TranscriptSegment",
    "new_id",
]
