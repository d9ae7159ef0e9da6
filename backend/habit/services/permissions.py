"""Notification permission query/request.

The device owns the real permission dialog; the client reports the outcome
through ``PUT /notifications/permission`` and it is kept in key-value storage.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from habit.core.config import settings
from habit.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

PERMISSION_KEY = "notificationPermission"

GRANTED = "granted"
DENIED = "denied"
UNDETERMINED = "undetermined"
PERMISSION_STATUSES = (GRANTED, DENIED, UNDETERMINED)


class PermissionGate:
    def __init__(self, db: Session):
        self.storage = KeyValueStorage(db)

    def get_status(self) -> str:
        if not settings.notifications_enabled:
            return DENIED
        status = self.storage.get_item(PERMISSION_KEY)
        if status in PERMISSION_STATUSES and status != UNDETERMINED:
            return status
        return settings.notifications_permission_default

    def request(self) -> bool:
        """Return True when alarms may be posted.

        An undetermined status resolves to the configured default; a denied
        one stays denied until the client reports otherwise.
        """
        status = self.get_status()
        if status != GRANTED:
            logger.warning("Notification permission not granted (status=%s)", status)
            return False
        return True

    def set_status(self, status: str) -> str:
        if status not in PERMISSION_STATUSES:
            raise ValueError(f"unknown permission status {status!r}")
        self.storage.set_item(PERMISSION_KEY, status)
        logger.info("Notification permission reported as %s", status)
        return self.get_status()
