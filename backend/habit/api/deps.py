"""FastAPI dependencies for the alarm services."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from habit.db.deps import get_db
from habit.services.alarms.scheduler import AlarmScheduler
from habit.services.alarms.timing import Clock, utcnow
from habit.services.notifications.adapter import NotificationAdapter
from habit.services.notifications.factory import get_notification_adapter
from habit.services.permissions import PermissionGate
from habit.services.task_store import TaskStore


def get_adapter() -> NotificationAdapter:
    return get_notification_adapter()


def get_clock() -> Clock:
    return utcnow


def get_task_store(db: Session = Depends(get_db)) -> TaskStore:
    return TaskStore(db)


def get_permission_gate(db: Session = Depends(get_db)) -> PermissionGate:
    return PermissionGate(db)


def get_alarm_scheduler(
    store: TaskStore = Depends(get_task_store),
    permissions: PermissionGate = Depends(get_permission_gate),
    adapter: NotificationAdapter = Depends(get_adapter),
    clock: Clock = Depends(get_clock),
) -> AlarmScheduler:
    return AlarmScheduler(store, adapter, permissions, clock=clock)
