"""Alarm subsystem error taxonomy."""
from __future__ import annotations


class AlarmError(Exception):
    """Base class; ``code`` is the machine-readable failure name."""

    code = "alarm_error"


class PermissionDenied(AlarmError):
    code = "permission_denied"


class InvalidTime(AlarmError):
    code = "invalid_time"


class BackendUnavailable(AlarmError):
    """A backend cannot serve on this device. Always recovered by fallback."""

    code = "backend_unavailable"


class BackendCallFailed(AlarmError):
    code = "backend_call_failed"


class StorageError(AlarmError):
    code = "storage_error"


class TaskNotFound(AlarmError):
    code = "task_not_found"
