"""In-process alarm runtime: handler install, delivery thread and startup recovery."""
from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from habit.core.config import settings
from habit.services import task_service
from habit.services.alarms.recovery import RecoveryResult, reschedule_all_alarms
from habit.services.alarms.scheduler import AlarmScheduler
from habit.services.notifications.factory import get_notification_adapter, get_standard_backend
from habit.services.notifications.handler import (
    AlarmDelivery,
    NotificationHandler,
    install_notification_handler,
    uninstall_notification_handler,
)
from habit.services.permissions import PermissionGate
from habit.services.task_store import TaskStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _scheduler_for(session: Session) -> AlarmScheduler:
    return AlarmScheduler(TaskStore(session), get_notification_adapter(), PermissionGate(session))


def start_alarm_runtime(session_factory: SessionFactory) -> None:
    """Install the notification handler, start delivery and re-arm stored alarms."""
    install_notification_handler(NotificationHandler(on_alarm=_delivery_listener(session_factory)))
    get_standard_backend().start()
    logger.info("Alarm runtime started (reschedule_on_startup=%s)", settings.reschedule_on_startup)

    if settings.reschedule_on_startup:
        run_recovery(session_factory)


def stop_alarm_runtime() -> None:
    get_standard_backend().shutdown()
    uninstall_notification_handler()
    logger.info("Alarm runtime stopped")


def run_recovery(session_factory: SessionFactory) -> RecoveryResult:
    session = session_factory()
    try:
        return reschedule_all_alarms(_scheduler_for(session))
    except Exception:  # pragma: no cover - startup must not fail on recovery
        logger.exception("Alarm recovery failed")
        return RecoveryResult()
    finally:
        session.close()


def _delivery_listener(session_factory: SessionFactory) -> Callable[[AlarmDelivery], None]:
    def _on_alarm(delivery: AlarmDelivery) -> None:
        session = session_factory()
        try:
            task_service.handle_alarm_fired(_scheduler_for(session), delivery.task_id, delivery.identifier)
        finally:
            session.close()

    return _on_alarm
