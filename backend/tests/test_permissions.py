from __future__ import annotations

import pytest

from habit.core.config import settings
from habit.services.permissions import DENIED, GRANTED, UNDETERMINED, PermissionGate


def test_default_permission_comes_from_settings(db_session):
    gate = PermissionGate(db_session)

    assert gate.get_status() == GRANTED
    assert gate.request() is True


def test_denied_permission_blocks_requests(db_session):
    gate = PermissionGate(db_session)
    gate.set_status(DENIED)

    assert gate.request() is False


def test_undetermined_resolves_to_default(db_session):
    gate = PermissionGate(db_session)

    assert gate.set_status(UNDETERMINED) == GRANTED


def test_disabled_notifications_always_deny(db_session, monkeypatch):
    monkeypatch.setattr(settings, "notifications_enabled", False)
    gate = PermissionGate(db_session)
    gate.set_status(GRANTED)

    assert gate.get_status() == DENIED
    assert gate.request() is False


def test_unknown_status_is_rejected(db_session):
    with pytest.raises(ValueError):
        PermissionGate(db_session).set_status("sometimes")
