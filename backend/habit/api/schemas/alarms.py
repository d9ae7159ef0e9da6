"""Schemas for alarm maintenance routes."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class UpcomingAlarm(BaseModel):
    task_id: str
    title: str
    alarm_time: datetime
    label: str
    notification_id: Optional[str]


class AlarmListResponse(BaseModel):
    alarms: List[UpcomingAlarm]
    active_notification_ids: List[str]
    request_id: str


class RescheduleResponse(BaseModel):
    scheduled: int
    skipped_past: int
    failed: int
    request_id: str


class CancelAllResponse(BaseModel):
    cancelled: int
    request_id: str
