"""Startup recovery: re-arm stored alarms after a process restart."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from habit.core.telemetry import log_metric, trace
from habit.services.alarms.errors import StorageError
from habit.services.alarms.scheduler import AlarmScheduler

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    scheduled: int = 0
    skipped_past: int = 0
    failed: int = 0


def reschedule_all_alarms(scheduler: AlarmScheduler, *, now: Optional[datetime] = None) -> RecoveryResult:
    """Re-arm every incomplete task whose alarm time is still ahead.

    Alarms whose time has already passed are left untouched (``hasAlarm``
    stays set). Each task is re-scheduled through ``schedule_alarm``, which
    cancels before arming, so repeated runs converge on one trigger per task.
    """
    result = RecoveryResult()
    current = now or scheduler.clock()

    try:
        tasks = scheduler.store.load_tasks()
    except StorageError:
        logger.exception("Alarm recovery could not read tasks")
        return result

    with trace("alarm.recovery", metadata={"tasks": len(tasks)}):
        for task in tasks:
            if not task.has_alarm or task.alarm_time is None or task.completed:
                continue
            if task.alarm_time <= current:
                result.skipped_past += 1
                logger.debug("Skipping past alarm for task %s (%s)", task.id, task.alarm_time.isoformat())
                continue
            try:
                outcome = scheduler.schedule_alarm(task.id, task.title, task.description, task.alarm_time)
            except Exception:  # pragma: no cover - schedule_alarm does not raise
                logger.exception("Alarm recovery failed for task %s", task.id)
                result.failed += 1
                continue
            if outcome.ok:
                result.scheduled += 1
            else:
                result.failed += 1
                logger.warning("Alarm recovery could not re-arm task %s: %s", task.id, outcome.failure)

    log_metric("alarm.recovery.rescheduled", result.scheduled)
    logger.info(
        "Alarm recovery complete: scheduled=%s skipped_past=%s failed=%s",
        result.scheduled,
        result.skipped_past,
        result.failed,
    )
    return result
