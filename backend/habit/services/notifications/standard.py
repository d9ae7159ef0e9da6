"""Cross-platform best-effort backend backed by an in-process APScheduler."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from habit.core.config import settings
from habit.services.alarms.timing import Clock, utcnow
from habit.services.notifications.base import NotificationBackend, NotificationContent, Unavailable
from habit.services.notifications.handler import dispatch_delivery

logger = logging.getLogger(__name__)


class StandardNotificationBackend(NotificationBackend):
    """Date-triggered jobs in a memory job store.

    Triggers do not survive a restart; the recovery routine re-arms them.
    """

    name = "standard"

    def __init__(self, scheduler: Optional[BaseScheduler] = None, *, clock: Clock = utcnow):
        self.scheduler = scheduler or BackgroundScheduler(timezone=settings.scheduler_timezone)
        self.clock = clock

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Standard notification scheduler started (tz=%s)", settings.scheduler_timezone)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Standard notification scheduler stopped")

    def probe(self) -> Optional[Unavailable]:
        return None

    def arm(self, alarm_id: str, content: NotificationContent, fire_time: datetime) -> Optional[str]:
        # A fresh id per trigger so a cancelled trigger never aliases its replacement.
        identifier = uuid4().hex
        self.scheduler.add_job(
            self.deliver,
            trigger="date",
            run_date=fire_time,
            args=[identifier, content],
            id=identifier,
            name=f"alarm:{alarm_id}",
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug("Standard trigger %s armed for %s at %s", identifier, alarm_id, fire_time.isoformat())
        return identifier

    def cancel(self, identifier: str) -> None:
        try:
            self.scheduler.remove_job(identifier)
        except JobLookupError:
            logger.debug("Standard trigger %s already gone", identifier)

    def list_active(self) -> List[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def display_now(self, alarm_id: str, content: NotificationContent) -> Optional[str]:
        identifier = f"{alarm_id}-now-{uuid4().hex[:8]}"
        self.scheduler.add_job(self.deliver, args=[identifier, content], id=identifier, name=f"alarm-now:{alarm_id}")
        return identifier

    def deliver(self, identifier: str, content: NotificationContent) -> None:
        """Job callback: hand the notification to the process-wide handler."""
        dispatch_delivery(identifier, content, self.clock())
