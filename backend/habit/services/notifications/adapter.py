"""Backend selection with fallback.

Backends are tried in preference order on every call. A backend that probes
as unavailable, returns no identifier, or raises is skipped in favour of the
next; callers only ever see the resulting identifier (or None).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from habit.services.notifications.base import NotificationBackend, NotificationContent

logger = logging.getLogger(__name__)


class NotificationAdapter:
    def __init__(self, backends: Sequence[NotificationBackend]):
        if not backends:
            raise ValueError("at least one notification backend is required")
        self.backends = list(backends)

    def _available(self) -> List[NotificationBackend]:
        ready: List[NotificationBackend] = []
        for backend in self.backends:
            unavailable = backend.probe()
            if unavailable is not None:
                logger.debug("Backend %s unavailable: %s", backend.name, unavailable.reason)
                continue
            ready.append(backend)
        return ready

    def arm(self, alarm_id: str, content: NotificationContent, fire_time: datetime) -> Optional[str]:
        for backend in self._available():
            try:
                identifier = backend.arm(alarm_id, content, fire_time)
            except Exception:
                logger.warning("Backend %s failed to arm %s; trying next", backend.name, alarm_id, exc_info=True)
                continue
            if identifier:
                logger.info("Alarm %s armed via %s (id=%s)", alarm_id, backend.name, identifier)
                return identifier
            logger.info("Backend %s returned no identifier for %s; trying next", backend.name, alarm_id)
        logger.error("No notification backend could arm %s", alarm_id)
        return None

    def cancel(self, identifier: str) -> None:
        """Cancel on every available backend; the id is only known to one of them."""
        backends = self._available()
        errors = []
        for backend in backends:
            try:
                backend.cancel(identifier)
            except Exception as exc:
                logger.warning("Backend %s failed to cancel %s: %s", backend.name, identifier, exc)
                errors.append(exc)
        if errors and len(errors) == len(backends):
            raise errors[0]

    def list_active(self) -> List[str]:
        identifiers: List[str] = []
        for backend in self._available():
            try:
                identifiers.extend(backend.list_active())
            except Exception:
                logger.warning("Backend %s failed to list triggers", backend.name, exc_info=True)
        return list(dict.fromkeys(identifiers))

    def display_now(self, alarm_id: str, content: NotificationContent) -> Optional[str]:
        for backend in self._available():
            try:
                identifier = backend.display_now(alarm_id, content)
            except Exception:
                logger.warning("Backend %s failed to display %s; trying next", backend.name, alarm_id, exc_info=True)
                continue
            if identifier:
                return identifier
        return None
