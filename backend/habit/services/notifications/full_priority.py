"""Full-priority Android alarm backend (AlarmManager through pyjnius).

The bridge module is loaded on demand by an availability probe. Off-device,
or when pyjnius is not installed, ``probe()`` returns an ``Unavailable``
instead of raising. Only a successful load is cached.

Triggers are PendingIntent broadcasts to the app's Java ``AlarmReceiver``,
which posts a full-screen notification on the ``alarm`` channel. They survive
process death; AlarmManager offers no listing API, so ``list_active`` reports
triggers armed by this process that have not yet passed.
"""
from __future__ import annotations

import hashlib
import importlib
import logging
import os
from datetime import datetime
from threading import Lock
from types import ModuleType
from typing import Callable, Dict, List, Optional

from habit.core.config import settings
from habit.services.alarms.timing import Clock, utcnow
from habit.services.notifications.base import NotificationBackend, NotificationContent, Unavailable

logger = logging.getLogger(__name__)


def is_android() -> bool:
    # python-for-android exports ANDROID_ARGUMENT into the app process.
    return "ANDROID_ARGUMENT" in os.environ


def stable_request_code(identifier: str) -> int:
    digest = hashlib.sha256(identifier.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") & 0x7FFFFFFF


class AndroidAlarmBridge:
    """Thin wrapper over the Java classes used for exact alarms."""

    def __init__(self, jnius: ModuleType):
        self.autoclass = jnius.autoclass
        self.cast = jnius.cast

    def _context(self):
        activity = self.autoclass("org.kivy.android.PythonActivity").mActivity
        return activity.getApplicationContext()

    def _pending_intent(self, context, identifier: str, content: Optional[NotificationContent]):
        Intent = self.autoclass("android.content.Intent")
        PendingIntent = self.autoclass("android.app.PendingIntent")
        Build = self.autoclass("android.os.Build")

        intent = Intent()
        intent.setClassName(context, settings.android_alarm_receiver)
        intent.putExtra("notificationId", identifier)
        if content is not None:
            intent.putExtra("title", content.title)
            intent.putExtra("body", content.body)
            intent.putExtra("channelId", content.channel_id)
            intent.putExtra("fullScreen", True)
            for key in ("taskId", "taskTitle", "type"):
                intent.putExtra(key, str(content.data.get(key) or ""))

        flags = PendingIntent.FLAG_UPDATE_CURRENT
        if int(Build.VERSION.SDK_INT) >= 23:
            flags |= PendingIntent.FLAG_IMMUTABLE
        return PendingIntent.getBroadcast(context, stable_request_code(identifier), intent, int(flags))

    def _alarm_manager(self, context):
        AlarmManager = self.autoclass("android.app.AlarmManager")
        Context = self.autoclass("android.content.Context")
        return AlarmManager, self.cast(AlarmManager, context.getSystemService(Context.ALARM_SERVICE))

    def set_alarm(self, identifier: str, content: NotificationContent, trigger_ms: int) -> None:
        context = self._context()
        pending = self._pending_intent(context, identifier, content)
        AlarmManager, manager = self._alarm_manager(context)
        sdk = int(self.autoclass("android.os.Build").VERSION.SDK_INT)
        if sdk >= 31 and not manager.canScheduleExactAlarms():
            manager.setAndAllowWhileIdle(AlarmManager.RTC_WAKEUP, trigger_ms, pending)
        elif sdk >= 23:
            manager.setExactAndAllowWhileIdle(AlarmManager.RTC_WAKEUP, trigger_ms, pending)
        else:
            manager.setExact(AlarmManager.RTC_WAKEUP, trigger_ms, pending)

    def cancel_alarm(self, identifier: str) -> None:
        context = self._context()
        pending = self._pending_intent(context, identifier, None)
        _, manager = self._alarm_manager(context)
        manager.cancel(pending)
        pending.cancel()


class FullPriorityNotificationBackend(NotificationBackend):
    name = "full_priority"

    def __init__(
        self,
        module_name: Optional[str] = None,
        *,
        platform_check: Callable[[], bool] = is_android,
        importer: Callable[[str], ModuleType] = importlib.import_module,
        bridge_factory: Callable[[ModuleType], AndroidAlarmBridge] = AndroidAlarmBridge,
        clock: Clock = utcnow,
    ):
        self.module_name = module_name or settings.full_priority_module
        self.platform_check = platform_check
        self.importer = importer
        self.bridge_factory = bridge_factory
        self.clock = clock
        self._bridge: Optional[AndroidAlarmBridge] = None
        self._load_lock = Lock()
        self._armed: Dict[str, datetime] = {}
        self._armed_lock = Lock()

    def probe(self) -> Optional[Unavailable]:
        if not settings.full_priority_backend_enabled:
            return Unavailable(self.name, "disabled by configuration")
        if not self.platform_check():
            return Unavailable(self.name, "not running on Android")
        if self._load_bridge() is None:
            return Unavailable(self.name, f"module {self.module_name!r} not installed")
        return None

    def _load_bridge(self) -> Optional[AndroidAlarmBridge]:
        with self._load_lock:
            if self._bridge is not None:
                return self._bridge
            try:
                module = self.importer(self.module_name)
            except ImportError as exc:
                logger.debug("Full-priority module %s not available: %s", self.module_name, exc)
                return None
            self._bridge = self.bridge_factory(module)
            return self._bridge

    def arm(self, alarm_id: str, content: NotificationContent, fire_time: datetime) -> Optional[str]:
        bridge = self._load_bridge()
        if bridge is None:
            return None
        if fire_time <= self.clock():
            return None
        identifier = f"alarm-{alarm_id}"
        bridge.set_alarm(identifier, content, int(fire_time.timestamp() * 1000))
        with self._armed_lock:
            self._prune_fired()
            self._armed[identifier] = fire_time
        logger.info("Full-priority alarm %s armed for %s", identifier, fire_time.isoformat())
        return identifier

    def cancel(self, identifier: str) -> None:
        bridge = self._load_bridge()
        if bridge is None:
            return
        bridge.cancel_alarm(identifier)
        with self._armed_lock:
            self._armed.pop(identifier, None)

    def list_active(self) -> List[str]:
        with self._armed_lock:
            self._prune_fired()
            return list(self._armed)

    def _prune_fired(self) -> None:
        # AlarmManager drops a trigger once it goes off; forget it here too.
        now = self.clock()
        for identifier in [key for key, when in self._armed.items() if when <= now]:
            del self._armed[identifier]

    def display_now(self, alarm_id: str, content: NotificationContent) -> Optional[str]:
        bridge = self._load_bridge()
        if bridge is None:
            return None
        identifier = f"alarm-now-{alarm_id}"
        bridge.set_alarm(identifier, content, int(self.clock().timestamp() * 1000))
        return identifier
