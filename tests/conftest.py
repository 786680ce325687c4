from __future__ import annotations

import os
import sys
import tempfile
from datetime import datetime, timezone
from typing import Callable

import pytest

# Ensure repo-root imports work (e.g., "meeting_pipeline.*")
sys.path.insert(0, os.path.abspath("."))

# -----------------------------------------------------------------------------
# Environment defaults for tests (must be set before the package is imported)
# -----------------------------------------------------------------------------

_TMP_DIR = tempfile.mkdtemp(prefix="meeting-pipeline-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("TRANSCRIPTION_PROVIDER", "mock")
os.environ.setdefault("LOCAL_NOTES_PROVIDER", "heuristic")
os.environ.setdefault("STORAGE_BACKEND", "fs")
os.environ.setdefault("FS_STORAGE_DIR", os.path.join(_TMP_DIR, "storage"))

from meeting_pipeline import telemetry  # noqa: E402
from meeting_pipeline.core.db import SessionLocal, engine  # noqa: E402
from meeting_pipeline.models import Base, Meeting  # noqa: E402


# -----------------------------------------------------------------------------
# DB schema setup/teardown
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _schema():
    """Every test starts from an empty schema."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def fresh_telemetry(monkeypatch) -> telemetry.JobTelemetry:
    agg = telemetry.JobTelemetry()
    monkeypatch.setattr(telemetry, "TELEMETRY", agg)
    return agg


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_meeting() -> Callable[..., Meeting]:
    def _make(
        audio_url: str = "uploads/meeting.m4a",
        status: str = "uploaded",
        created_at: datetime | None = None,
        title: str = "Weekly sync",
    ) -> Meeting:
        session = SessionLocal()
        try:
            meeting = Meeting(
                title=title,
                audio_url=audio_url,
                status=status,
                created_at=created_at or datetime.now(timezone.utc),
            )
            session.add(meeting)
            session.commit()
            return meeting
        finally:
            session.close()

    return _make


class RecordingStorage:
    """Storage double that records calls and signs URLs deterministically."""

    def __init__(self, fail_on: set[str] | None = None):
        self.presigned: list[str] = []
        self.deleted: list[str] = []
        self.fail_on = fail_on or set()

    def presign_download(self, key: str) -> str:
        self.presigned.append(key)
        return f"https://signed.example/{key}?sig=abc"

    def presign_upload(self, key: str, content_type: str | None = None) -> str:
        return f"https://signed.example/{key}?upload=1"

    def delete_object(self, key: str) -> None:
        if key in self.fail_on:
            raise RuntimeError(f"delete refused for {key}")
        self.deleted.append(key)


@pytest.fixture()
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture()
def make_storage() -> Callable[..., RecordingStorage]:
    return RecordingStorage
