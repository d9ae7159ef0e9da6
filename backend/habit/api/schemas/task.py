"""Schemas for task and task-alarm routes."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TaskCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    alarm_time: Optional[datetime] = None


class TaskUpdateRequest(BaseModel):
    completed: bool


class TaskAlarmRequest(BaseModel):
    alarm_time: datetime


class TaskSnoozeRequest(BaseModel):
    minutes: Optional[int] = Field(default=None, ge=1, le=24 * 60)


class AlarmFiredRequest(BaseModel):
    notification_id: Optional[str] = None


class AlarmStatus(BaseModel):
    state: str
    label: str
    minutes_until: Optional[int]
    notification_id: Optional[str]
    failure: Optional[str] = None
    warning: Optional[str] = None


class TaskSummary(BaseModel):
    id: str
    title: str
    description: str
    completed: bool
    created_at: datetime
    has_alarm: bool
    alarm_time: Optional[datetime]
    alarm: AlarmStatus


class TaskResponse(TaskSummary):
    request_id: str


class AlarmFiredResponse(BaseModel):
    task_id: str
    recorded: bool
    request_id: str
