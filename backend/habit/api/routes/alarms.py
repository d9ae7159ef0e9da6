"""Alarm maintenance routes: listing, recovery and bulk cancel."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from habit.api.deps import get_alarm_scheduler
from habit.api.schemas.alarms import AlarmListResponse, CancelAllResponse, RescheduleResponse, UpcomingAlarm
from habit.core.telemetry import log_metric, trace
from habit.services.alarms.recovery import reschedule_all_alarms
from habit.services.alarms.scheduler import AlarmScheduler
from habit.services.alarms.timing import format_alarm_time
from habit.services.task_service import tasks_with_upcoming_alarms

router = APIRouter()


@router.get("/alarms", response_model=AlarmListResponse, tags=["alarms"])
def list_alarms(request: Request, scheduler: AlarmScheduler = Depends(get_alarm_scheduler)) -> AlarmListResponse:
    request_id = getattr(request.state, "request_id", None)
    now = scheduler.clock()
    with trace("alarms.list", request_id=request_id):
        bindings = scheduler.store.get_bindings()
        upcoming = [
            UpcomingAlarm(
                task_id=task.id,
                title=task.title,
                alarm_time=task.alarm_time,
                label=format_alarm_time(task.alarm_time, now),
                notification_id=bindings.get(task.id),
            )
            for task in tasks_with_upcoming_alarms(scheduler.store, now)
        ]
        active = scheduler.list_scheduled()
    return AlarmListResponse(alarms=upcoming, active_notification_ids=active, request_id=request_id or "")


@router.post("/alarms/reschedule", response_model=RescheduleResponse, tags=["alarms"])
def reschedule_alarms(request: Request, scheduler: AlarmScheduler = Depends(get_alarm_scheduler)) -> RescheduleResponse:
    """Run the startup recovery routine on demand."""
    request_id = getattr(request.state, "request_id", None)
    with trace("alarms.reschedule", request_id=request_id):
        result = reschedule_all_alarms(scheduler)
    return RescheduleResponse(
        scheduled=result.scheduled,
        skipped_past=result.skipped_past,
        failed=result.failed,
        request_id=request_id or "",
    )


@router.delete("/alarms", response_model=CancelAllResponse, tags=["alarms"])
def cancel_all_alarms(request: Request, scheduler: AlarmScheduler = Depends(get_alarm_scheduler)) -> CancelAllResponse:
    request_id = getattr(request.state, "request_id", None)
    with trace("alarms.cancel_all", request_id=request_id):
        cancelled = scheduler.cancel_all_alarms()
    log_metric("alarms.cancel_all", cancelled)
    return CancelAllResponse(cancelled=cancelled, request_id=request_id or "")
