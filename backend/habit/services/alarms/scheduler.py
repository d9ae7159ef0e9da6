"""Alarm scheduler: binds tasks to backend notification triggers.

Public methods never raise. Failures come back as a ``ScheduleResult``
carrying the error code, or as a falsy return for cancellation.

Within one ``schedule_alarm`` call the order is fixed: the previous binding
is cancelled, then the new trigger is armed, then the new binding is
persisted. A task therefore never holds two live triggers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from time import perf_counter
from typing import List, Optional

from habit.core.config import settings
from habit.core.telemetry import log_metric, trace
from habit.services.alarms.errors import (
    AlarmError,
    BackendCallFailed,
    InvalidTime,
    PermissionDenied,
    StorageError,
)
from habit.services.alarms.timing import Clock, as_utc, is_far_enough_ahead, utcnow
from habit.services.notifications.adapter import NotificationAdapter
from habit.services.notifications.base import build_alarm_content
from habit.services.permissions import PermissionGate
from habit.services.task_store import TaskStore

logger = logging.getLogger(__name__)

STATE_SCHEDULED = "scheduled"
STATE_FIRED = "fired"


@dataclass
class ScheduleResult:
    notification_id: Optional[str] = None
    failure: Optional[str] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.notification_id is not None


class AlarmScheduler:
    def __init__(
        self,
        store: TaskStore,
        adapter: NotificationAdapter,
        permissions: PermissionGate,
        *,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.adapter = adapter
        self.permissions = permissions
        self.clock = clock

    def schedule_alarm(self, task_id: str, title: str, description: str, fire_time: datetime) -> ScheduleResult:
        start = perf_counter()
        with trace("alarm.schedule", metadata={"task_id": task_id}):
            try:
                identifier = self._schedule(task_id, title, description or "", as_utc(fire_time))
            except AlarmError as exc:
                logger.warning("Alarm for task %s not scheduled (%s): %s", task_id, exc.code, exc)
                log_metric("alarm.schedule.failed", 1, metadata={"reason": exc.code})
                return ScheduleResult(failure=exc.code, reason=str(exc))
            except Exception as exc:
                logger.exception("Unexpected failure scheduling alarm for task %s", task_id)
                log_metric("alarm.schedule.failed", 1, metadata={"reason": BackendCallFailed.code})
                return ScheduleResult(failure=BackendCallFailed.code, reason=str(exc))

        log_metric("alarm.schedule.success", 1)
        log_metric("alarm.schedule.latency_ms", (perf_counter() - start) * 1000)
        return ScheduleResult(notification_id=identifier)

    def _schedule(self, task_id: str, title: str, description: str, fire_time: datetime) -> str:
        if not self.permissions.request():
            raise PermissionDenied("notification permission has not been granted")

        now = self.clock()
        if not is_far_enough_ahead(fire_time, now, settings.alarm_min_lead_seconds):
            raise InvalidTime(
                f"alarm time {fire_time.isoformat()} must be at least "
                f"{settings.alarm_min_lead_seconds}s after {now.isoformat()}"
            )

        self.cancel_alarm(task_id)

        content = build_alarm_content(task_id, title, description, channel_id=settings.alarm_channel_id)
        identifier = self.adapter.arm(task_id, content, fire_time)
        if not identifier:
            raise BackendCallFailed("no notification backend accepted the alarm")

        try:
            self.store.set_binding(task_id, identifier)
            self.store.set_alarm_metadata(
                task_id,
                {
                    "state": STATE_SCHEDULED,
                    "notificationId": identifier,
                    "fireTime": fire_time.isoformat(),
                    "scheduledAt": now.isoformat(),
                },
            )
        except StorageError:
            # The trigger is live; recovery or the next schedule call repairs the binding.
            logger.exception("Alarm %s armed for task %s but binding was not persisted", identifier, task_id)

        logger.info("Alarm scheduled task=%s id=%s at=%s", task_id, identifier, fire_time.isoformat())
        return identifier

    def cancel_alarm(self, task_id: str) -> bool:
        """Cancel the task's trigger and always drop its binding.

        Returns True when a binding existed.
        """
        try:
            identifier = self.store.get_binding(task_id)
        except StorageError:
            logger.exception("Could not read alarm binding for task %s", task_id)
            return False
        if identifier is None:
            return False

        try:
            self.adapter.cancel(identifier)
        except Exception:
            logger.warning("Backend cancel failed for task %s id=%s", task_id, identifier, exc_info=True)

        try:
            self.store.remove_binding(task_id)
            self.store.remove_alarm_metadata(task_id)
        except StorageError:
            logger.exception("Could not remove alarm binding for task %s", task_id)

        log_metric("alarm.cancel", 1)
        logger.info("Alarm cancelled task=%s id=%s", task_id, identifier)
        return True

    def cancel_all_alarms(self) -> int:
        """Cancel every bound or backend-known trigger and clear all bindings."""
        try:
            identifiers = list(self.store.get_bindings().values())
        except StorageError:
            logger.exception("Could not read alarm bindings")
            identifiers = []
        identifiers.extend(self.list_scheduled())

        cancelled = 0
        for identifier in dict.fromkeys(identifiers):
            try:
                self.adapter.cancel(identifier)
                cancelled += 1
            except Exception:
                logger.warning("Backend cancel failed for id=%s", identifier, exc_info=True)

        try:
            self.store.clear_bindings()
            self.store.clear_alarm_metadata()
        except StorageError:
            logger.exception("Could not clear alarm bindings")
        logger.info("All alarms cancelled (%s triggers)", cancelled)
        return cancelled

    def list_scheduled(self) -> List[str]:
        try:
            return self.adapter.list_active()
        except Exception:
            logger.warning("Could not list scheduled notifications", exc_info=True)
            return []

    def mark_fired(self, task_id: str, notification_id: Optional[str] = None) -> bool:
        """Record that the task's alarm went off and release its binding.

        A delivery from a trigger that no longer matches the binding is stale
        and ignored.
        """
        try:
            current = self.store.get_binding(task_id)
            if notification_id and current and current != notification_id:
                logger.info("Ignoring stale delivery for task %s (id=%s, bound=%s)", task_id, notification_id, current)
                return False
            if current:
                self.store.remove_binding(task_id, only_if=current)
            metadata = dict(self.store.get_alarm_metadata(task_id) or {})
            metadata.update(
                state=STATE_FIRED,
                notificationId=notification_id or current,
                firedAt=self.clock().isoformat(),
            )
            self.store.set_alarm_metadata(task_id, metadata)
        except StorageError:
            logger.exception("Could not record fired alarm for task %s", task_id)
            return False
        log_metric("alarm.fired", 1)
        logger.info("Alarm fired task=%s id=%s", task_id, notification_id or current)
        return True

    def ring_now(self, task_id: str, title: str, description: str = "") -> ScheduleResult:
        """Show the full-screen alarm immediately, without touching the binding."""
        try:
            if not self.permissions.request():
                raise PermissionDenied("notification permission has not been granted")
            content = build_alarm_content(task_id, title, description, channel_id=settings.alarm_channel_id)
            identifier = self.adapter.display_now(task_id, content)
            if not identifier:
                raise BackendCallFailed("no notification backend could display the alarm")
        except AlarmError as exc:
            logger.warning("Immediate alarm for task %s failed (%s)", task_id, exc.code)
            return ScheduleResult(failure=exc.code, reason=str(exc))
        return ScheduleResult(notification_id=identifier)
