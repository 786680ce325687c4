"""RQ entry points. Each run is timed into telemetry before errors propagate."""

from __future__ import annotations

import logging

from rq import get_current_job

from meeting_pipeline.jobs.process_audio import mark_meeting_failed, process_meeting_audio
from meeting_pipeline.jobs.process_notes import process_meeting_notes
from meeting_pipeline.telemetry import GENERATE_MEETING_NOTES, PROCESS_MEETING_AUDIO, track_job

log = logging.getLogger(__name__)


def is_final_attempt() -> bool:
    """True when RQ will not retry the current job after a failure."""
    job = get_current_job()
    if job is None:
        return True
    return not job.retries_left


def process_meeting_audio_job(meeting_id: str) -> None:
    """Transcribe, then chain notes generation for the same meeting."""
    try:
        with track_job(PROCESS_MEETING_AUDIO):
            process_meeting_audio(meeting_id)
            process_meeting_notes(meeting_id)
    except Exception as exc:
        if is_final_attempt():
            try:
                mark_meeting_failed(meeting_id, f"{type(exc).__name__}: {exc}")
            except Exception:
                log.exception("could not mark meeting failed", extra={"meeting_id": meeting_id})
        raise


def generate_meeting_notes_job(meeting_id: str) -> None:
    with track_job(GENERATE_MEETING_NOTES):
        process_meeting_notes(meeting_id)
