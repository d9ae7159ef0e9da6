"""Notification adapter factory."""
from __future__ import annotations

from functools import lru_cache

from habit.services.notifications.adapter import NotificationAdapter
from habit.services.notifications.full_priority import FullPriorityNotificationBackend
from habit.services.notifications.standard import StandardNotificationBackend


@lru_cache
def get_standard_backend() -> StandardNotificationBackend:
    return StandardNotificationBackend()


@lru_cache
def get_notification_adapter() -> NotificationAdapter:
    """Full-priority first, standard as the fallback."""
    return NotificationAdapter([FullPriorityNotificationBackend(), get_standard_backend()])
