from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any

_job_id_ctx: ContextVar[str | None] = ContextVar("job_id", default=None)

# Everything a bare LogRecord carries; anything else came in through `extra=`
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

# Libraries whose INFO chatter drowns job logs
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "httpcore", "openai")


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, job_id, extras."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        job_id = _job_id_ctx.get()
        if job_id:
            payload["job_id"] = job_id

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            payload.setdefault(key, value)

        return json.dumps(payload, default=str)


def configure_logging(service: str, level: str | int = "INFO") -> None:
    """
    Route every logger in this process to stdout as JSON lines.

    Call once per process (supervisor and each consumer), e.g.:

        configure_logging("worker-process_meeting_audio", settings.LOG_LEVEL)
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info("logging configured", extra={"service": service})


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name)


def bind_job_context(job_id: str | None) -> None:
    """Tag records emitted from here on with `job_id` (None clears it)."""
    _job_id_ctx.set(job_id)


def log_kv(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """log_kv(logger, logging.INFO, "job completed", job_id=job.id, queue=queue.name)"""
    logger.log(level, message, extra=fields)
