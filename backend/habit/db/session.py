"""Engine and session factory."""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from habit.core.config import settings


def _connect_args(url: str) -> dict:
    # SQLite connections are shared by request threads and alarm delivery threads.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.database_url, connect_args=_connect_args(settings.database_url), future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(bind=None) -> None:
    """Create missing tables on the given engine (defaults to the app engine)."""
    from habit.db import Base

    Base.metadata.create_all(bind=bind or engine)
