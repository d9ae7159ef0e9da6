"""Shared fixtures: in-memory storage, a frozen clock and fake notification backends."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from habit.db.models.kv_entry import KeyValueEntry
from habit.services.alarms.scheduler import AlarmScheduler
from habit.services.notifications.adapter import NotificationAdapter
from habit.services.notifications.base import NotificationBackend, NotificationContent, Unavailable
from habit.services.permissions import PermissionGate
from habit.services.task_store import TaskStore

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class FakeBackend(NotificationBackend):
    """Records triggers in memory; can be told to be missing or to blow up."""

    def __init__(self, name: str, *, available: bool = True, fail_arm: bool = False, fail_cancel: bool = False):
        self.name = name
        self.available = available
        self.fail_arm = fail_arm
        self.fail_cancel = fail_cancel
        self.triggers: Dict[str, Tuple[str, datetime, NotificationContent]] = {}
        self.cancelled: List[str] = []
        self.arm_calls = 0
        self._counter = 0

    def probe(self) -> Optional[Unavailable]:
        return None if self.available else Unavailable(self.name, "module not installed")

    def arm(self, alarm_id, content, fire_time):
        self.arm_calls += 1
        if self.fail_arm:
            raise RuntimeError(f"{self.name} arm failed")
        self._counter += 1
        identifier = f"{self.name}-{self._counter}"
        self.triggers[identifier] = (alarm_id, fire_time, content)
        return identifier

    def cancel(self, identifier):
        self.cancelled.append(identifier)
        if self.fail_cancel:
            raise RuntimeError(f"{self.name} cancel failed")
        self.triggers.pop(identifier, None)

    def list_active(self):
        return list(self.triggers)

    def display_now(self, alarm_id, content):
        return f"{self.name}-now-{alarm_id}"

    def triggers_for(self, task_id: str) -> List[str]:
        return [identifier for identifier, (alarm_id, _, _) in self.triggers.items() if alarm_id == task_id]


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    KeyValueEntry.__table__.create(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def backends():
    return SimpleNamespace(full=FakeBackend("full"), standard=FakeBackend("standard"))


@pytest.fixture()
def scheduler(db_session, backends, clock):
    adapter = NotificationAdapter([backends.full, backends.standard])
    return AlarmScheduler(TaskStore(db_session), adapter, PermissionGate(db_session), clock=clock)


@pytest.fixture()
def client(monkeypatch, session_factory, backends, clock):
    from habit.api.deps import get_adapter, get_clock
    from habit.db.deps import get_db
    from habit.main import app

    adapter = NotificationAdapter([backends.full, backends.standard])

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_adapter] = lambda: adapter
    app.dependency_overrides[get_clock] = lambda: clock
    monkeypatch.setattr("habit.main.init_db", lambda bind=None: None)
    monkeypatch.setattr("habit.main.start_alarm_runtime", lambda session_factory: None)
    monkeypatch.setattr("habit.main.stop_alarm_runtime", lambda: None)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_backend():
    return FakeBackend
