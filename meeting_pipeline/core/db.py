# meeting_pipeline/core/db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from meeting_pipeline.core.settings import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    # ON DELETE SET NULL on speaker/segment references needs this on SQLite
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(url: str | None = None) -> Engine:
    url = url or get_settings().DATABASE_URL
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, pool_recycle=1800)

    # Retention thread and job handlers share one engine in the supervisor
    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(sqlite_engine, "connect", _enable_sqlite_foreign_keys)
    return sqlite_engine


engine = _build_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session that commits when the block exits cleanly and rolls back otherwise."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create all tables registered on the model metadata."""
    from meeting_pipeline.models import Base

    Base.metadata.create_all(bind=engine)


__all__ = ["SessionLocal", "engine", "init_db", "session_scope"]
