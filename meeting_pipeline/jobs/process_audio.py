from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from meeting_pipeline.core.db import session_scope
from meeting_pipeline.models import Meeting, MeetingStatus, Speaker, TranscriptSegment
from meeting_pipeline.services.transcription import (
    ProviderSegment,
    TranscriptionProvider,
    create_transcription_provider,
)

log = logging.getLogger(__name__)


def _segment_count(db: Session, meeting_id: str) -> int:
    return db.scalar(
        select(func.count()).select_from(TranscriptSegment).where(
            TranscriptSegment.meeting_id == meeting_id
        )
    ) or 0


def _set_status(db: Session, meeting_id: str, status: MeetingStatus) -> None:
    meeting = db.get(Meeting, meeting_id)
    if meeting is not None:
        meeting.status = status.value


def persist_segments(db: Session, meeting_id: str, segments: list[ProviderSegment]) -> int:
    """Insert speakers (once per label) and one transcript row per segment, in order."""
    speaker_ids: dict[str, str] = {
        label: speaker_id
        for label, speaker_id in db.execute(
            select(Speaker.label, Speaker.id).where(Speaker.meeting_id == meeting_id)
        )
    }
    for segment in segments:
        if segment.speaker_label not in speaker_ids:
            speaker = Speaker(
                meeting_id=meeting_id,
                label=segment.speaker_label,
                display_name=segment.speaker_label,
            )
            db.add(speaker)
            db.flush()
            speaker_ids[segment.speaker_label] = speaker.id

    for segment in segments:
        db.add(
            TranscriptSegment(
                meeting_id=meeting_id,
                speaker_id=speaker_ids.get(segment.speaker_label),
                start_ms=segment.start_ms,
                end_ms=segment.end_ms,
                text=segment.text,
                confidence=segment.confidence,
            )
        )
        # flush per row so insertion order follows provider order
        db.flush()
    return len(speaker_ids)


def process_meeting_audio(
    meeting_id: str,
    provider: Optional[TranscriptionProvider] = None,
) -> None:
    """
    Transcribe a meeting's audio and persist speakers + segments.

      - Missing meeting: nothing to do
      - Segments already present: only mark COMPLETED (safe redelivery)
      - Otherwise: PROCESSING -> provider call -> persist -> COMPLETED

    Provider and persistence errors propagate so the job queue can retry.
    """
    log_extra: dict[str, Any] = {"meeting_id": meeting_id}

    # 1) Load meeting, idempotency guard, mark PROCESSING
    with session_scope() as db:
        meeting = db.get(Meeting, meeting_id)
        if meeting is None:
            log.warning("process_meeting_audio: meeting not found", extra=log_extra)
            return

        if _segment_count(db, meeting_id) > 0:
            meeting.status = MeetingStatus.completed.value
            meeting.last_error = None
            log.info("process_meeting_audio: transcript already present", extra=log_extra)
            return

        meeting.status = MeetingStatus.processing.value
        meeting.last_error = None
        if meeting.started_at is None:
            meeting.started_at = datetime.now(timezone.utc)
        audio_url = meeting.audio_url

    # 2) Transcription
    provider = provider or create_transcription_provider()
    log.info(
        "process_meeting_audio: transcribing audio",
        extra={**log_extra, "provider": getattr(provider, "name", type(provider).__name__)},
    )
    segments = provider.transcribe_and_diarize(audio_url)

    # 3) Persist speakers + segments and mark COMPLETED in one transaction
    with session_scope() as db:
        speakers = persist_segments(db, meeting_id, segments)
        _set_status(db, meeting_id, MeetingStatus.completed)

    log.info(
        "process_meeting_audio: finished",
        extra={**log_extra, "segments": len(segments), "speakers": speakers},
    )


def mark_meeting_failed(meeting_id: str, error: str) -> bool:
    """Move a meeting stuck in PROCESSING to FAILED. Returns True if it changed."""
    with session_scope() as db:
        meeting = db.get(Meeting, meeting_id)
        if meeting is None or meeting.status != MeetingStatus.processing.value:
            return False
        meeting.status = MeetingStatus.failed.value
        meeting.last_error = error[:250]
    log.warning(
        "process_meeting_audio: meeting marked failed",
        extra={"meeting_id": meeting_id, "error": error[:250]},
    )
    return True
