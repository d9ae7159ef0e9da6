"""Task lifecycle and alarm state transitions.

Per task the alarm moves between NO_ALARM, SCHEDULED and FIRED. Setting or
snoozing goes to SCHEDULED (replacing any binding); cancelling, completing
or deleting goes back to NO_ALARM; a delivered trigger records FIRED until
the user snoozes, completes or cancels.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from habit.core.config import settings
from habit.services.alarms.errors import InvalidTime, TaskNotFound
from habit.services.alarms.scheduler import STATE_FIRED, AlarmScheduler, ScheduleResult
from habit.services.alarms.timing import as_utc, is_far_enough_ahead, snooze_time
from habit.services.task_store import TaskRecord, TaskStore

logger = logging.getLogger(__name__)


class AlarmState(str, enum.Enum):
    NO_ALARM = "no_alarm"
    SCHEDULED = "scheduled"
    FIRED = "fired"


@dataclass
class TaskAlarmOutcome:
    task: TaskRecord
    schedule: Optional[ScheduleResult] = None

    @property
    def alarm_failed(self) -> bool:
        return self.schedule is not None and not self.schedule.ok


def alarm_state(task: TaskRecord, now: datetime, metadata: Optional[dict] = None) -> AlarmState:
    if not task.has_alarm or task.alarm_time is None:
        return AlarmState.NO_ALARM
    if metadata and metadata.get("state") == STATE_FIRED:
        return AlarmState.FIRED
    if task.alarm_time <= now:
        return AlarmState.FIRED
    return AlarmState.SCHEDULED


def _require_margin(alarm_time: datetime, now: datetime) -> datetime:
    alarm_time = as_utc(alarm_time)
    if not is_far_enough_ahead(alarm_time, now, settings.alarm_safety_margin_seconds):
        raise InvalidTime(
            f"Alarm time must be at least {settings.alarm_safety_margin_seconds} seconds in the future."
        )
    return alarm_time


def list_tasks(store: TaskStore) -> List[TaskRecord]:
    return store.load_tasks()


def get_task(store: TaskStore, task_id: str) -> TaskRecord:
    task = store.get_task(task_id)
    if task is None:
        raise TaskNotFound(task_id)
    return task


def create_task(
    scheduler: AlarmScheduler,
    *,
    title: str,
    description: str = "",
    alarm_time: Optional[datetime] = None,
) -> TaskAlarmOutcome:
    """Persist a new task and arm its alarm when one is requested.

    The task is kept even when arming fails; the outcome carries the failure.
    """
    if alarm_time is not None:
        alarm_time = _require_margin(alarm_time, scheduler.clock())

    task = TaskRecord(
        title=title,
        description=description,
        created_at=scheduler.clock(),
        has_alarm=alarm_time is not None,
        alarm_time=alarm_time,
    )
    scheduler.store.add_task(task)
    logger.info("Task created id=%s alarm=%s", task.id, task.alarm_time)

    if alarm_time is None:
        return TaskAlarmOutcome(task=task)
    result = scheduler.schedule_alarm(task.id, task.title, task.description, alarm_time)
    return TaskAlarmOutcome(task=task, schedule=result)


def set_task_alarm(scheduler: AlarmScheduler, task_id: str, alarm_time: datetime) -> TaskAlarmOutcome:
    alarm_time = _require_margin(alarm_time, scheduler.clock())
    return _rearm(scheduler, task_id, alarm_time)


def snooze_task_alarm(scheduler: AlarmScheduler, task_id: str, minutes: Optional[int] = None) -> TaskAlarmOutcome:
    minutes = minutes or settings.snooze_default_minutes
    alarm_time = snooze_time(minutes, scheduler.clock(), min_lead_seconds=settings.alarm_min_lead_seconds)
    return _rearm(scheduler, task_id, alarm_time)


def _rearm(scheduler: AlarmScheduler, task_id: str, alarm_time: datetime) -> TaskAlarmOutcome:
    """Point the task's alarm at ``alarm_time`` and arm it.

    When arming fails and the binding is unchanged (permission or time
    rejected before any cancel), the stored alarm fields are put back so the
    record keeps describing whatever trigger is still live.
    """
    current = get_task(scheduler.store, task_id)
    if current.completed:
        raise InvalidTime("Completed tasks cannot have an alarm.")
    previous_binding = scheduler.store.get_binding(task_id)

    def _apply(task: TaskRecord) -> None:
        task.has_alarm = True
        task.alarm_time = alarm_time

    task = scheduler.store.update_task(task_id, _apply)
    result = scheduler.schedule_alarm(task.id, task.title, task.description, alarm_time)
    if not result.ok and scheduler.store.get_binding(task_id) == previous_binding:

        def _restore(task: TaskRecord) -> None:
            task.has_alarm = current.has_alarm
            task.alarm_time = current.alarm_time

        task = scheduler.store.update_task(task_id, _restore)
        logger.info("Alarm for task %s left at %s after failed re-arm (%s)", task_id, task.alarm_time, result.failure)
    return TaskAlarmOutcome(task=task, schedule=result)


def cancel_task_alarm(scheduler: AlarmScheduler, task_id: str) -> TaskRecord:
    get_task(scheduler.store, task_id)
    scheduler.cancel_alarm(task_id)
    return scheduler.store.update_task(task_id, TaskRecord.clear_alarm)


def complete_task(scheduler: AlarmScheduler, task_id: str, completed: bool = True) -> TaskRecord:
    get_task(scheduler.store, task_id)
    if completed:
        scheduler.cancel_alarm(task_id)

    def _apply(task: TaskRecord) -> None:
        task.completed = completed
        if completed:
            task.clear_alarm()

    task = scheduler.store.update_task(task_id, _apply)
    logger.info("Task %s marked %s", task_id, "completed" if completed else "pending")
    return task


def delete_task(scheduler: AlarmScheduler, task_id: str) -> None:
    """Cancel the task's alarm, then remove the task."""
    get_task(scheduler.store, task_id)
    scheduler.cancel_alarm(task_id)
    scheduler.store.delete_task(task_id)
    logger.info("Task deleted id=%s", task_id)


def handle_alarm_fired(scheduler: AlarmScheduler, task_id: str, notification_id: Optional[str] = None) -> bool:
    if scheduler.store.get_task(task_id) is None:
        logger.warning("Alarm fired for unknown task %s", task_id)
        return False
    return scheduler.mark_fired(task_id, notification_id)


def tasks_with_upcoming_alarms(store: TaskStore, now: datetime) -> List[TaskRecord]:
    return [
        task
        for task in store.load_tasks()
        if task.has_alarm and task.alarm_time is not None and not task.completed and task.alarm_time > now
    ]
