"""Task and task-alarm API routes."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from habit.api.deps import get_alarm_scheduler, get_task_store
from habit.api.schemas.task import (
    AlarmFiredRequest,
    AlarmFiredResponse,
    AlarmStatus,
    TaskAlarmRequest,
    TaskCreateRequest,
    TaskResponse,
    TaskSnoozeRequest,
    TaskSummary,
    TaskUpdateRequest,
)
from habit.core.telemetry import log_metric, trace
from habit.services import task_service
from habit.services.alarms.errors import InvalidTime, StorageError, TaskNotFound
from habit.services.alarms.scheduler import AlarmScheduler, ScheduleResult
from habit.services.alarms.timing import format_alarm_time, minutes_until_alarm
from habit.services.task_store import TaskRecord, TaskStore

router = APIRouter()

FAILURE_MESSAGES = {
    "permission_denied": "Notification permission is not granted. Enable notifications to receive alarms.",
    "invalid_time": "Alarm time must be in the future.",
    "backend_call_failed": "The alarm could not be scheduled on this device.",
    "storage_error": "Alarm settings could not be saved.",
}


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _alarm_status(
    task: TaskRecord,
    now: datetime,
    binding: Optional[str],
    metadata: Optional[dict],
    schedule: Optional[ScheduleResult] = None,
) -> AlarmStatus:
    state = task_service.alarm_state(task, now, metadata)
    failure = schedule.failure if schedule is not None else None
    return AlarmStatus(
        state=state.value,
        label=format_alarm_time(task.alarm_time, now),
        minutes_until=minutes_until_alarm(task.alarm_time, now),
        notification_id=binding,
        failure=failure,
        warning=FAILURE_MESSAGES.get(failure) if failure else None,
    )


def _serialize_task(
    task: TaskRecord,
    scheduler: AlarmScheduler,
    *,
    bindings: Optional[Dict[str, str]] = None,
    metadata: Optional[Dict[str, dict]] = None,
    schedule: Optional[ScheduleResult] = None,
) -> TaskSummary:
    if bindings is None:
        bindings = scheduler.store.get_bindings()
    if metadata is None:
        metadata = scheduler.store.get_alarm_metadata_map()
    return TaskSummary(
        id=task.id,
        title=task.title,
        description=task.description,
        completed=task.completed,
        created_at=task.created_at,
        has_alarm=task.has_alarm,
        alarm_time=task.alarm_time,
        alarm=_alarm_status(task, scheduler.clock(), bindings.get(task.id), metadata.get(task.id), schedule),
    )


def _task_response(task: TaskRecord, scheduler: AlarmScheduler, request: Request, schedule: Optional[ScheduleResult] = None) -> TaskResponse:
    summary = _serialize_task(task, scheduler, schedule=schedule)
    return TaskResponse(**summary.model_dump(), request_id=_request_id(request) or "")


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


def _storage_failed() -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Task storage unavailable")


def _schedule_conflict(result: ScheduleResult) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"code": result.failure, "message": FAILURE_MESSAGES.get(result.failure or "", result.reason)},
    )


@router.get("/tasks", response_model=List[TaskSummary], tags=["tasks"])
def list_tasks(
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> List[TaskSummary]:
    """List stored tasks in creation order with their alarm status."""
    with trace("task.list", metadata={"route": "/tasks"}, request_id=_request_id(request)):
        try:
            tasks = task_service.list_tasks(scheduler.store)
            bindings = scheduler.store.get_bindings()
            metadata = scheduler.store.get_alarm_metadata_map()
        except StorageError:
            raise _storage_failed()
    log_metric("task.list.count", len(tasks))
    return [_serialize_task(task, scheduler, bindings=bindings, metadata=metadata) for task in tasks]


@router.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED, tags=["tasks"])
def create_task(
    payload: TaskCreateRequest,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    """Create a task; an alarm that cannot be armed is reported, not fatal."""
    with trace(
        "task.create",
        metadata={"route": "/tasks", "has_alarm": payload.alarm_time is not None},
        request_id=_request_id(request),
    ):
        try:
            outcome = task_service.create_task(
                scheduler,
                title=payload.title.strip(),
                description=payload.description.strip(),
                alarm_time=payload.alarm_time,
            )
        except InvalidTime as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        except StorageError:
            raise _storage_failed()

    log_metric("task.create.success", 1, metadata={"alarm_failed": outcome.alarm_failed})
    return _task_response(outcome.task, scheduler, request, outcome.schedule)


@router.get("/tasks/{task_id}", response_model=TaskResponse, tags=["tasks"])
def get_task(
    task_id: str,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    try:
        task = task_service.get_task(scheduler.store, task_id)
    except TaskNotFound:
        raise _not_found()
    return _task_response(task, scheduler, request)


@router.patch("/tasks/{task_id}", response_model=TaskResponse, tags=["tasks"])
def update_task_completion(
    task_id: str,
    payload: TaskUpdateRequest,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    """Mark a task complete (cancelling its alarm) or pending again."""
    with trace(
        "task.complete",
        metadata={"task_id": task_id, "completed": payload.completed},
        request_id=_request_id(request),
    ):
        try:
            task = task_service.complete_task(scheduler, task_id, payload.completed)
        except TaskNotFound:
            raise _not_found()
        except StorageError:
            raise _storage_failed()
    log_metric("task.complete.success", 1, metadata={"completed": payload.completed})
    return _task_response(task, scheduler, request)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["tasks"])
def delete_task(
    task_id: str,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> Response:
    with trace("task.delete", metadata={"task_id": task_id}, request_id=_request_id(request)):
        try:
            task_service.delete_task(scheduler, task_id)
        except TaskNotFound:
            raise _not_found()
        except StorageError:
            raise _storage_failed()
    log_metric("task.delete.success", 1)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/tasks/{task_id}/alarm", response_model=TaskResponse, tags=["alarms"])
def set_task_alarm(
    task_id: str,
    payload: TaskAlarmRequest,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    with trace("task.alarm.set", metadata={"task_id": task_id}, request_id=_request_id(request)):
        try:
            outcome = task_service.set_task_alarm(scheduler, task_id, payload.alarm_time)
        except TaskNotFound:
            raise _not_found()
        except InvalidTime as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        except StorageError:
            raise _storage_failed()
    if outcome.alarm_failed:
        raise _schedule_conflict(outcome.schedule)
    return _task_response(outcome.task, scheduler, request, outcome.schedule)


@router.delete("/tasks/{task_id}/alarm", response_model=TaskResponse, tags=["alarms"])
def cancel_task_alarm(
    task_id: str,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    with trace("task.alarm.cancel", metadata={"task_id": task_id}, request_id=_request_id(request)):
        try:
            task = task_service.cancel_task_alarm(scheduler, task_id)
        except TaskNotFound:
            raise _not_found()
        except StorageError:
            raise _storage_failed()
    return _task_response(task, scheduler, request)


@router.post("/tasks/{task_id}/alarm/snooze", response_model=TaskResponse, tags=["alarms"])
def snooze_task_alarm(
    task_id: str,
    payload: TaskSnoozeRequest,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    with trace("task.alarm.snooze", metadata={"task_id": task_id, "minutes": payload.minutes}, request_id=_request_id(request)):
        try:
            outcome = task_service.snooze_task_alarm(scheduler, task_id, payload.minutes)
        except TaskNotFound:
            raise _not_found()
        except InvalidTime as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        except StorageError:
            raise _storage_failed()
    if outcome.alarm_failed:
        raise _schedule_conflict(outcome.schedule)
    log_metric("task.alarm.snooze", 1)
    return _task_response(outcome.task, scheduler, request, outcome.schedule)


@router.post("/tasks/{task_id}/alarm/fired", response_model=AlarmFiredResponse, tags=["alarms"])
def report_alarm_fired(
    task_id: str,
    payload: AlarmFiredRequest,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> AlarmFiredResponse:
    """Called by the device when a platform alarm went off."""
    with trace("task.alarm.fired", metadata={"task_id": task_id}, request_id=_request_id(request)):
        try:
            task_service.get_task(scheduler.store, task_id)
            recorded = task_service.handle_alarm_fired(scheduler, task_id, payload.notification_id)
        except TaskNotFound:
            raise _not_found()
        except StorageError:
            raise _storage_failed()
    log_metric("task.alarm.fired", 1, metadata={"recorded": recorded})
    return AlarmFiredResponse(task_id=task_id, recorded=recorded, request_id=_request_id(request) or "")


@router.post("/tasks/{task_id}/alarm/ring-now", response_model=TaskResponse, tags=["alarms"])
def ring_task_alarm_now(
    task_id: str,
    request: Request,
    scheduler: AlarmScheduler = Depends(get_alarm_scheduler),
) -> TaskResponse:
    """Display the full-screen alarm immediately (e.g. right after the device locks)."""
    try:
        task = task_service.get_task(scheduler.store, task_id)
    except TaskNotFound:
        raise _not_found()
    result = scheduler.ring_now(task.id, task.title, task.description)
    if not result.ok:
        raise _schedule_conflict(result)
    return _task_response(task, scheduler, request)
