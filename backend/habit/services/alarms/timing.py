"""Date arithmetic shared by the alarm scheduler and task transitions."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_alarm_time(alarm_time: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if alarm_time is None:
        return False
    return as_utc(alarm_time) > (now or utcnow())


def is_far_enough_ahead(alarm_time: datetime, now: datetime, lead_seconds: int) -> bool:
    """True when the alarm is in the future by at least ``lead_seconds``."""
    delta = as_utc(alarm_time) - now
    return delta > timedelta(0) and delta >= timedelta(seconds=lead_seconds)


def minutes_until_alarm(alarm_time: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if alarm_time is None:
        return None
    delta = as_utc(alarm_time) - (now or utcnow())
    return int(delta.total_seconds() // 60)


def snooze_time(minutes: int, now: Optional[datetime] = None, *, min_lead_seconds: int = 0) -> datetime:
    """Now plus ``minutes``, truncated to the whole minute.

    Truncation can land closer than ``min_lead_seconds`` to now; the result
    then moves on to the next whole minute.
    """
    current = now or utcnow()
    base = (current + timedelta(minutes=minutes)).replace(second=0, microsecond=0)
    if not is_far_enough_ahead(base, current, min_lead_seconds):
        base += timedelta(minutes=1)
    return base


def format_alarm_time(alarm_time: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Human label: 'Today at 09:30', 'Tomorrow at 07:00' or 'Mar 3 at 18:15'."""
    if alarm_time is None:
        return "Not set"
    current = now or utcnow()
    when = as_utc(alarm_time).astimezone(current.tzinfo)
    time_str = when.strftime("%H:%M")

    if when.date() == current.date():
        return f"Today at {time_str}"
    if when.date() == (current + timedelta(days=1)).date():
        return f"Tomorrow at {time_str}"
    date_str = f"{when.strftime('%b')} {when.day}"
    if when.year != current.year:
        date_str = f"{date_str}, {when.year}"
    return f"{date_str} at {time_str}"
