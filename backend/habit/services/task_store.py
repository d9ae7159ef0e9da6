"""Persistent task store: tasks, alarm bindings and alarm metadata.

The three collections are whole JSON blobs in key-value storage. Every
mutation reloads the blob, changes it and writes it back under one
process-wide lock, so request handlers and alarm delivery threads do not
clobber each other inside a single process.
"""
from __future__ import annotations

import logging
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from habit.services.alarms.errors import TaskNotFound
from habit.services.alarms.timing import as_utc, utcnow
from habit.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"
BINDINGS_KEY = "scheduledAlarms"
ALARM_METADATA_KEY = "alarmMetadata"

_STORE_LOCK = RLock()


def new_task_id() -> str:
    return uuid4().hex


class TaskRecord(BaseModel):
    """A task as persisted under the ``tasks`` key (camelCase on disk)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_task_id)
    title: str
    description: str = ""
    completed: bool = False
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    has_alarm: bool = Field(default=False, alias="hasAlarm")
    alarm_time: Optional[datetime] = Field(default=None, alias="alarmTime")

    @field_validator("created_at", "alarm_time")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _alarm_fields_agree(self) -> "TaskRecord":
        # alarmTime is set iff hasAlarm; older records may disagree.
        if self.alarm_time is None or not self.has_alarm:
            self.has_alarm = False
            self.alarm_time = None
        return self

    def clear_alarm(self) -> None:
        self.has_alarm = False
        self.alarm_time = None

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class TaskStore:
    """Read/modify/write access to the persisted task collections."""

    def __init__(self, db: Session):
        self.storage = KeyValueStorage(db)

    # -- tasks ----------------------------------------------------------

    def load_tasks(self) -> List[TaskRecord]:
        raw = self.storage.get_item(TASKS_KEY, default=[])
        tasks: List[TaskRecord] = []
        for item in raw:
            try:
                tasks.append(TaskRecord.model_validate(item))
            except ValueError:
                logger.warning("Dropping unreadable task record: %r", item)
        return tasks

    def save_tasks(self, tasks: List[TaskRecord]) -> None:
        self.storage.set_item(TASKS_KEY, [task.to_storage() for task in tasks])

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return next((task for task in self.load_tasks() if task.id == task_id), None)

    def add_task(self, task: TaskRecord) -> TaskRecord:
        with _STORE_LOCK:
            tasks = self.load_tasks()
            tasks.append(task)
            self.save_tasks(tasks)
        return task

    def update_task(self, task_id: str, mutate: Callable[[TaskRecord], None]) -> TaskRecord:
        with _STORE_LOCK:
            tasks = self.load_tasks()
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                raise TaskNotFound(task_id)
            mutate(task)
            self.save_tasks(tasks)
        return task

    def delete_task(self, task_id: str) -> bool:
        with _STORE_LOCK:
            tasks = self.load_tasks()
            remaining = [task for task in tasks if task.id != task_id]
            if len(remaining) == len(tasks):
                return False
            self.save_tasks(remaining)
        return True

    # -- bindings (task id -> backend notification id) -------------------

    def get_bindings(self) -> Dict[str, str]:
        return dict(self.storage.get_item(BINDINGS_KEY, default={}))

    def get_binding(self, task_id: str) -> Optional[str]:
        return self.get_bindings().get(task_id)

    def set_binding(self, task_id: str, notification_id: str) -> None:
        with _STORE_LOCK:
            bindings = self.get_bindings()
            bindings[task_id] = notification_id
            self.storage.set_item(BINDINGS_KEY, bindings)

    def remove_binding(self, task_id: str, *, only_if: Optional[str] = None) -> Optional[str]:
        """Drop the binding; with ``only_if`` the binding must still hold that id."""
        with _STORE_LOCK:
            bindings = self.get_bindings()
            current = bindings.get(task_id)
            if current is None or (only_if is not None and current != only_if):
                return None
            del bindings[task_id]
            self.storage.set_item(BINDINGS_KEY, bindings)
        return current

    def clear_bindings(self) -> None:
        with _STORE_LOCK:
            self.storage.remove_item(BINDINGS_KEY)

    # -- alarm metadata ---------------------------------------------------

    def get_alarm_metadata_map(self) -> Dict[str, dict]:
        return dict(self.storage.get_item(ALARM_METADATA_KEY, default={}))

    def get_alarm_metadata(self, task_id: str) -> Optional[dict]:
        return self.get_alarm_metadata_map().get(task_id)

    def set_alarm_metadata(self, task_id: str, metadata: dict) -> None:
        with _STORE_LOCK:
            entries = dict(self.storage.get_item(ALARM_METADATA_KEY, default={}))
            entries[task_id] = metadata
            self.storage.set_item(ALARM_METADATA_KEY, entries)

    def remove_alarm_metadata(self, task_id: str) -> None:
        with _STORE_LOCK:
            entries = dict(self.storage.get_item(ALARM_METADATA_KEY, default={}))
            if entries.pop(task_id, None) is not None:
                self.storage.set_item(ALARM_METADATA_KEY, entries)

    def clear_alarm_metadata(self) -> None:
        with _STORE_LOCK:
            self.storage.remove_item(ALARM_METADATA_KEY)
