"""Notification configuration and permission routes."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from habit.api.deps import get_adapter, get_permission_gate
from habit.core.config import settings
from habit.core.telemetry import log_metric, trace
from habit.services.notifications.adapter import NotificationAdapter
from habit.services.permissions import PermissionGate

router = APIRouter()


class PermissionUpdate(BaseModel):
    status: Literal["granted", "denied", "undetermined"]


@router.get("/notifications/config", tags=["notifications"])
def get_notifications_config(
    request: Request,
    permissions: PermissionGate = Depends(get_permission_gate),
    adapter: NotificationAdapter = Depends(get_adapter),
) -> dict:
    request_id = getattr(request.state, "request_id", None)
    with trace("notifications.config", request_id=request_id):
        backends = []
        for backend in adapter.backends:
            unavailable = backend.probe()
            backends.append(
                {
                    "name": backend.name,
                    "available": unavailable is None,
                    "reason": unavailable.reason if unavailable else None,
                }
            )
        return {
            "enabled": settings.notifications_enabled,
            "permission": permissions.get_status(),
            "channel": {"id": settings.alarm_channel_id, "name": settings.alarm_channel_name},
            "backends": backends,
            "request_id": request_id or "",
        }


@router.put("/notifications/permission", tags=["notifications"])
def update_notification_permission(
    payload: PermissionUpdate,
    request: Request,
    permissions: PermissionGate = Depends(get_permission_gate),
) -> dict:
    """Record the permission outcome reported by the device."""
    request_id = getattr(request.state, "request_id", None)
    effective = permissions.set_status(payload.status)
    log_metric("notifications.permission", 1, metadata={"status": payload.status})
    return {"status": effective, "request_id": request_id or ""}
