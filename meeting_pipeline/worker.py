from __future__ import annotations

import argparse
import logging
import multiprocessing
import signal
import sys
import threading
from typing import Sequence

from prometheus_client import start_http_server
from redis import Redis
from rq import Queue, SimpleWorker

from meeting_pipeline.core.settings import Settings, get_settings
from meeting_pipeline.logging_utils import (
    bind_job_context,
    configure_logging,
    get_logger,
    log_kv,
)
from meeting_pipeline.telemetry import TelemetryReporter

logger = get_logger(__name__)


class ObservabilityWorker(SimpleWorker):
    """
    RQ worker that runs jobs in-process (so telemetry stays in this
    process), attaches job context and logs lifecycle events.
    """

    def perform_job(self, job, queue, *args, **kwargs):
        # Attach job_id to the logging context for the duration of the job
        bind_job_context(job.id)
        queue_name = getattr(queue, "name", "unknown")
        log_kv(
            logger,
            logging.INFO,
            "job starting",
            job_id=job.id,
            queue=queue_name,
            meeting_id=job.kwargs.get("meeting_id"),
            retries_left=job.retries_left,
        )
        try:
            ok = super().perform_job(job, queue, *args, **kwargs)
        finally:
            bind_job_context(None)

        if ok:
            log_kv(logger, logging.INFO, "job completed", job_id=job.id, queue=queue_name)
        else:
            log_kv(
                logger,
                logging.ERROR,
                "job failed",
                job_id=job.id,
                queue=queue_name,
                retries_left=job.retries_left,
            )
        return ok


def build_worker(queue_name: str, connection: Redis) -> ObservabilityWorker:
    from meeting_pipeline.jobs.queue import get_queue

    queue: Queue = get_queue(queue_name, connection=connection)
    return ObservabilityWorker([queue], connection=connection)


def run_consumer(
    queue_name: str,
    connection: Redis | None = None,
    burst: bool = False,
    settings: Settings | None = None,
) -> bool:
    """Consume one queue until stopped (or until empty when `burst`)."""
    from meeting_pipeline.jobs.queue import get_redis

    settings = settings or get_settings()
    connection = connection or get_redis()
    worker = build_worker(queue_name, connection)

    reporter = TelemetryReporter(settings.TELEMETRY_LOG_INTERVAL_SEC)
    reporter.start()
    logger.info("worker starting", extra={"queue": queue_name, "burst": burst})
    try:
        # The scheduler moves retried jobs back onto the queue once their backoff elapses
        return worker.work(burst=burst, with_scheduler=not burst)
    finally:
        reporter.stop()
        reporter.emit()


def _consumer_process(queue_name: str) -> None:
    from meeting_pipeline.jobs.queue import QUEUE_NAMES

    settings = get_settings()
    configure_logging(f"worker-{queue_name}", settings.LOG_LEVEL)
    if settings.METRICS_PORT:
        port = settings.METRICS_PORT + QUEUE_NAMES.index(queue_name)
        start_http_server(port)
        logger.info("metrics exposed", extra={"queue": queue_name, "port": port})
    run_consumer(queue_name, settings=settings)


def run_all(settings: Settings | None = None) -> int:
    """
    Supervisor: one consumer process per queue, retention loop in this process.
    """
    from meeting_pipeline.core.db import init_db
    from meeting_pipeline.jobs.queue import QUEUE_NAMES
    from meeting_pipeline.jobs.retention import run_retention_loop

    settings = settings or get_settings()

    missing = settings.missing_provider_settings()
    if missing:
        logger.warning("provider configuration incomplete", extra={"missing": missing})

    if settings.APP_ENV == "dev":
        init_db()

    ctx = multiprocessing.get_context("spawn")
    children = [
        ctx.Process(target=_consumer_process, args=(name,), name=f"worker-{name}")
        for name in QUEUE_NAMES
    ]
    for child in children:
        child.start()

    stop_event = threading.Event()

    def handle_sig(signum, frame):
        logger.warning("Shutting down worker...", extra={"signal": signum})
        stop_event.set()

    signal.signal(signal.SIGTERM, handle_sig)
    signal.signal(signal.SIGINT, handle_sig)

    retention = threading.Thread(
        target=run_retention_loop,
        args=(stop_event, settings),
        name="audio-retention",
        daemon=True,
    )
    retention.start()

    while not stop_event.is_set():
        if not any(child.is_alive() for child in children):
            logger.error("all consumers exited")
            break
        stop_event.wait(5)

    for child in children:
        if child.is_alive():
            child.terminate()  # SIGTERM: RQ finishes the current job, then stops
    for child in children:
        child.join()
    stop_event.set()
    retention.join(timeout=10)
    return 0 if all(child.exitcode in (0, None) for child in children) else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="meeting-pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="start all queue consumers and the retention loop")

    consume = sub.add_parser("consume", help="consume a single queue in this process")
    consume.add_argument("queue")
    consume.add_argument("--burst", action="store_true", help="exit once the queue is empty")

    for name, help_text in (
        ("enqueue-audio", "transcribe a meeting and generate its notes"),
        ("enqueue-notes", "regenerate notes for a meeting"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("meeting_id")

    sub.add_parser("sweep", help="run one audio retention sweep")
    sub.add_parser("init-db", help="create database tables")

    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(settings.SERVICE_NAME, settings.LOG_LEVEL)

    if args.command == "run":
        return run_all(settings)

    if args.command == "consume":
        # work() returns False for an empty burst; worker errors raise instead
        run_consumer(args.queue, burst=args.burst, settings=settings)
        return 0

    if args.command in ("enqueue-audio", "enqueue-notes"):
        from meeting_pipeline.jobs.queue import enqueue_generate_notes, enqueue_process_audio

        enqueue = enqueue_process_audio if args.command == "enqueue-audio" else enqueue_generate_notes
        job = enqueue(args.meeting_id, settings=settings)
        log_kv(logger, logging.INFO, "job enqueued", job_id=job.id, queue=job.origin)
        return 0

    if args.command == "sweep":
        from meeting_pipeline.jobs.retention import run_audio_retention_sweep

        result = run_audio_retention_sweep(settings)
        if not settings.AUDIO_RETENTION_ENABLED:
            logger.info("Audio retention disabled; nothing swept")
        return 0 if result.failed == 0 else 1

    from meeting_pipeline.core.db import init_db

    init_db()
    logger.info("database initialised")
    return 0


if __name__ == "__main__":
    sys.exit(main())
