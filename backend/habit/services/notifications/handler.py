"""Process-wide notification handler.

Installed once at startup by ``habit.main`` and removed at shutdown. Backends
that deliver in-process (the standard backend) hand every delivery to
``dispatch_delivery``, which applies the presentation policy and forwards
alarm deliveries to the registered listener.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Callable, Optional

from habit.services.notifications.base import NotificationContent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationBehavior:
    show_alert: bool = True
    play_sound: bool = True
    set_badge: bool = True
    priority: str = "default"


@dataclass(frozen=True)
class AlarmDelivery:
    identifier: str
    task_id: Optional[str]
    task_title: Optional[str]
    content: NotificationContent
    delivered_at: datetime
    behavior: NotificationBehavior


AlarmListener = Callable[[AlarmDelivery], None]


@dataclass(frozen=True)
class NotificationHandler:
    on_alarm: Optional[AlarmListener] = None
    alarm_behavior: NotificationBehavior = NotificationBehavior(priority="max")
    default_behavior: NotificationBehavior = NotificationBehavior()

    def behavior_for(self, content: NotificationContent) -> NotificationBehavior:
        return self.alarm_behavior if content.is_alarm else self.default_behavior


_handler: Optional[NotificationHandler] = None
_handler_lock = Lock()


def install_notification_handler(handler: NotificationHandler) -> None:
    global _handler
    with _handler_lock:
        if _handler is not None:
            logger.warning("Replacing an already installed notification handler")
        _handler = handler


def uninstall_notification_handler() -> None:
    global _handler
    with _handler_lock:
        _handler = None


def get_notification_handler() -> NotificationHandler:
    """Return the installed handler, or a listener-less default."""
    return _handler or NotificationHandler()


def dispatch_delivery(identifier: str, content: NotificationContent, delivered_at: datetime) -> AlarmDelivery:
    handler = get_notification_handler()
    behavior = handler.behavior_for(content)
    delivery = AlarmDelivery(
        identifier=identifier,
        task_id=content.task_id,
        task_title=content.data.get("taskTitle"),
        content=content,
        delivered_at=delivered_at,
        behavior=behavior,
    )
    logger.info(
        "Notification delivered id=%s task=%s alarm=%s priority=%s",
        identifier,
        delivery.task_id,
        content.is_alarm,
        behavior.priority,
    )
    if content.is_alarm and delivery.task_id and handler.on_alarm is not None:
        try:
            handler.on_alarm(delivery)
        except Exception:
            logger.exception("Alarm listener failed for task %s", delivery.task_id)
    return delivery
