"""Notification backend interface."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

ALARM_TITLE = "⏰ Time to Do Your Task!"
ALARM_TYPE = "alarm"


@dataclass(frozen=True)
class Unavailable:
    """Why a backend cannot serve on this device right now."""

    backend: str
    reason: str


@dataclass
class NotificationContent:
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    sound: bool = True
    channel_id: str = "alarm"
    priority: str = "max"

    @property
    def is_alarm(self) -> bool:
        return self.data.get("type") == ALARM_TYPE

    @property
    def task_id(self) -> Optional[str]:
        return self.data.get("taskId")


def build_alarm_content(task_id: str, title: str, description: str = "", *, channel_id: str = "alarm") -> NotificationContent:
    if description:
        body = f"NOW: {title}\n{description}"
    else:
        body = f"NOW: {title}\nIt's time to complete this task!"
    return NotificationContent(
        title=ALARM_TITLE,
        body=body,
        data={
            "taskId": task_id,
            "taskTitle": title,
            "taskDescription": description or "",
            "type": ALARM_TYPE,
        },
        sound=True,
        channel_id=channel_id,
    )


class NotificationBackend:
    """Base interface for alarm delivery mechanisms."""

    name = "base"

    def probe(self) -> Optional[Unavailable]:
        """Return None when the backend can serve, else an ``Unavailable``."""
        raise NotImplementedError

    def arm(self, alarm_id: str, content: NotificationContent, fire_time: datetime) -> Optional[str]:
        """Register a trigger; return the backend identifier or None."""
        raise NotImplementedError

    def cancel(self, identifier: str) -> None:
        """Drop a pending trigger. Unknown or already fired ids are a no-op."""
        raise NotImplementedError

    def list_active(self) -> List[str]:
        raise NotImplementedError

    def display_now(self, alarm_id: str, content: NotificationContent) -> Optional[str]:
        raise NotImplementedError
