# meeting_pipeline/jobs/queue.py
from __future__ import annotations

from functools import lru_cache

from redis import Redis
from rq import Queue, Retry
from rq.job import Job

from meeting_pipeline.core.settings import Settings, get_settings
from meeting_pipeline.telemetry import GENERATE_MEETING_NOTES, PROCESS_MEETING_AUDIO

AUDIO_QUEUE = PROCESS_MEETING_AUDIO
NOTES_QUEUE = GENERATE_MEETING_NOTES
QUEUE_NAMES = (AUDIO_QUEUE, NOTES_QUEUE)


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    # RQ stores pickled payloads; responses must stay bytes
    return Redis.from_url(get_settings().REDIS_URL, decode_responses=False)


def get_queue(name: str, connection: Redis | None = None) -> Queue:
    if name not in QUEUE_NAMES:
        raise ValueError(f"unknown queue {name!r}")
    return Queue(name, connection=connection or get_redis())


def backoff_intervals(max_attempts: int, base_delay: float) -> list[int]:
    """Delays before each retry: base, 2*base, 4*base ... (max_attempts - 1 entries)."""
    return [int(round(base_delay * 2**i)) for i in range(max(0, max_attempts - 1))]


def retry_policy(settings: Settings | None = None) -> Retry | None:
    """RQ retry for JOB_MAX_ATTEMPTS total attempts, or None for a single attempt."""
    settings = settings or get_settings()
    retries = settings.JOB_MAX_ATTEMPTS - 1
    if retries <= 0:
        return None
    return Retry(
        max=retries,
        interval=backoff_intervals(settings.JOB_MAX_ATTEMPTS, settings.JOB_BACKOFF_BASE_SEC),
    )


def _enqueue(queue: Queue, func: str, meeting_id: str, settings: Settings) -> Job:
    return queue.enqueue(
        func,
        meeting_id=str(meeting_id),
        retry=retry_policy(settings),
        job_timeout=settings.JOB_TIMEOUT_SEC,
        failure_ttl=7 * 24 * 3600,
        description=f"{queue.name}[{meeting_id}]",
    )


def enqueue_process_audio(
    meeting_id: str,
    queue: Queue | None = None,
    settings: Settings | None = None,
) -> Job:
    """Enqueue transcription (+ chained notes) for an uploaded meeting."""
    settings = settings or get_settings()
    return _enqueue(
        queue or get_queue(AUDIO_QUEUE),
        "meeting_pipeline.jobs.tasks.process_meeting_audio_job",
        meeting_id,
        settings,
    )


def enqueue_generate_notes(
    meeting_id: str,
    queue: Queue | None = None,
    settings: Settings | None = None,
) -> Job:
    """Enqueue a notes regeneration for a meeting that already has a transcript."""
    settings = settings or get_settings()
    return _enqueue(
        queue or get_queue(NOTES_QUEUE),
        "meeting_pipeline.jobs.tasks.generate_meeting_notes_job",
        meeting_id,
        settings,
    )
