from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select

from meeting_pipeline.core.db import session_scope
from meeting_pipeline.core.settings import Settings, get_settings
from meeting_pipeline.models import Meeting
from meeting_pipeline.models.meeting import TERMINAL_STATUSES, TOMBSTONE_PREFIX
from meeting_pipeline.services.storage import Storage, choose_storage

log = logging.getLogger(__name__)


def is_deleted_audio_url(audio_url: str) -> bool:
    return audio_url.startswith(TOMBSTONE_PREFIX)


def to_deleted_audio_url(audio_url: str) -> str:
    return f"{TOMBSTONE_PREFIX}{audio_url}"


@dataclass
class RetentionResult:
    candidates: int = 0
    deleted: int = 0
    failed: int = 0


def find_retention_candidates(
    cutoff: datetime, batch_size: int
) -> list[tuple[str, str]]:
    """(meeting_id, audio_url) of terminal meetings created before `cutoff`, oldest first."""
    with session_scope() as db:
        rows = db.execute(
            select(Meeting.id, Meeting.audio_url)
            .where(
                Meeting.created_at < cutoff,
                Meeting.status.in_(TERMINAL_STATUSES),
                Meeting.audio_url.not_like(f"{TOMBSTONE_PREFIX}%"),
            )
            .order_by(Meeting.created_at.asc())
            .limit(batch_size)
        ).all()
    return [(row[0], row[1]) for row in rows]


def run_audio_retention_sweep(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    now: Optional[datetime] = None,
) -> RetentionResult:
    """
    Delete audio objects of old, finished meetings and tombstone their key.

    Each meeting is handled on its own: a failed delete is logged and the
    sweep moves on. Tombstoned rows never qualify again.
    """
    settings = settings or get_settings()
    result = RetentionResult()
    if not settings.AUDIO_RETENTION_ENABLED:
        return result

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=settings.AUDIO_RETENTION_DAYS)
    candidates = find_retention_candidates(cutoff, settings.AUDIO_RETENTION_BATCH_SIZE)
    result.candidates = len(candidates)
    if not candidates:
        return result

    storage = storage or choose_storage(settings)

    for meeting_id, audio_url in candidates:
        if not audio_url or is_deleted_audio_url(audio_url):
            continue
        try:
            storage.delete_object(audio_url)
            with session_scope() as db:
                meeting = db.get(Meeting, meeting_id)
                if meeting is not None:
                    meeting.audio_url = to_deleted_audio_url(audio_url)
            result.deleted += 1
        except Exception as exc:  # noqa: BLE001
            result.failed += 1
            log.error(
                "Audio retention delete failed",
                extra={"meeting_id": meeting_id, "error": f"{type(exc).__name__}: {exc}"},
            )

    log.info(
        "Audio retention sweep completed",
        extra={
            "candidates": result.candidates,
            "deleted_count": result.deleted,
            "failed_count": result.failed,
            "retention_days": settings.AUDIO_RETENTION_DAYS,
        },
    )
    return result


def run_retention_loop(
    stop_event: threading.Event,
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
) -> None:
    """Sweep every AUDIO_RETENTION_SWEEP_MINUTES until `stop_event` is set."""
    settings = settings or get_settings()
    if not settings.AUDIO_RETENTION_ENABLED:
        log.info("Audio retention disabled")
        return

    interval = settings.AUDIO_RETENTION_SWEEP_MINUTES * 60
    log.info(
        "Audio retention loop started",
        extra={"interval_sec": interval, "retention_days": settings.AUDIO_RETENTION_DAYS},
    )
    while not stop_event.is_set():
        try:
            run_audio_retention_sweep(settings, storage)
        except Exception:
            log.exception("Audio retention sweep failed")
        stop_event.wait(interval)
