from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from prometheus_client import Counter, Histogram

log = logging.getLogger(__name__)

PROCESS_MEETING_AUDIO = "process_meeting_audio"
GENERATE_MEETING_NOTES = "generate_meeting_notes"
JOB_TYPES = (PROCESS_MEETING_AUDIO, GENERATE_MEETING_NOTES)

# Scrape-able mirror of the aggregator, served only when METRICS_PORT is set
JOB_COUNT = Counter("job_count_by_status", "Jobs by status", ["job", "status"])
JOB_DURATION = Histogram(
    "job_duration_seconds",
    "Job duration seconds",
    ["job"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600, 1800),
)


@dataclass
class JobMetric:
    completed: int = 0
    failed: int = 0
    total_duration_ms: int = 0


@dataclass
class JobTelemetry:
    """Success/failure counters and cumulative duration per job type."""

    job_types: tuple[str, ...] = JOB_TYPES
    _metrics: dict[str, JobMetric] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self) -> None:
        for job_type in self.job_types:
            self._metrics.setdefault(job_type, JobMetric())

    def _metric(self, job_type: str) -> JobMetric:
        try:
            return self._metrics[job_type]
        except KeyError:
            raise ValueError(f"unknown job type {job_type!r}") from None

    def record_success(self, job_type: str, duration_ms: int) -> None:
        with self._lock:
            metric = self._metric(job_type)
            metric.completed += 1
            metric.total_duration_ms += max(0, int(duration_ms))

    def record_failure(self, job_type: str, duration_ms: int) -> None:
        with self._lock:
            metric = self._metric(job_type)
            metric.failed += 1
            metric.total_duration_ms += max(0, int(duration_ms))

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            out: dict[str, dict[str, Any]] = {}
            for job_type, metric in self._metrics.items():
                attempts = metric.completed + metric.failed
                out[job_type] = {
                    "completed": metric.completed,
                    "failed": metric.failed,
                    "total_duration_ms": metric.total_duration_ms,
                    "attempts": attempts,
                    "failure_rate": metric.failed / attempts if attempts else 0,
                    "avg_duration_ms": round(metric.total_duration_ms / attempts) if attempts else 0,
                }
            return out


# ---- Process-wide aggregator ----

TELEMETRY = JobTelemetry()


def get_telemetry_snapshot() -> dict[str, dict[str, Any]]:
    return TELEMETRY.snapshot()


@contextmanager
def track_job(job_type: str, telemetry: JobTelemetry | None = None) -> Iterator[None]:
    """Time the block and record it as a success, or a failure if it raises."""
    telemetry = telemetry or TELEMETRY
    start = time.perf_counter()
    try:
        yield
    except Exception:
        telemetry.record_failure(job_type, _elapsed_ms(start))
        JOB_COUNT.labels(job_type, "error").inc()
        raise
    else:
        telemetry.record_success(job_type, _elapsed_ms(start))
        JOB_COUNT.labels(job_type, "success").inc()
    finally:
        JOB_DURATION.labels(job_type).observe(time.perf_counter() - start)


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class TelemetryReporter(threading.Thread):
    """Daemon thread that logs the telemetry snapshot on a fixed interval."""

    def __init__(self, interval_sec: float, telemetry: JobTelemetry | None = None):
        super().__init__(name="telemetry-reporter", daemon=True)
        self.interval_sec = interval_sec
        self.telemetry = telemetry or TELEMETRY
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_sec):
            self.emit()

    def emit(self) -> None:
        log.info("Worker telemetry", extra={"telemetry": self.telemetry.snapshot()})

    def stop(self) -> None:
        self._stop_event.set()
