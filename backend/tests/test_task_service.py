from __future__ import annotations

from datetime import timedelta

import pytest

from habit.services import task_service
from habit.services.alarms.errors import InvalidTime, TaskNotFound
from habit.services.permissions import DENIED
from habit.services.task_service import AlarmState


def test_create_task_with_alarm_persists_and_binds(scheduler, clock):
    alarm_time = clock() + timedelta(minutes=15)

    outcome = task_service.create_task(scheduler, title="Walk", description="Around the block", alarm_time=alarm_time)

    assert not outcome.alarm_failed
    stored = scheduler.store.get_task(outcome.task.id)
    assert stored.has_alarm is True
    assert stored.alarm_time == alarm_time
    assert scheduler.store.get_binding(stored.id) == outcome.schedule.notification_id


def test_create_task_without_alarm_arms_nothing(scheduler, backends):
    outcome = task_service.create_task(scheduler, title="Plain")

    assert outcome.schedule is None
    assert outcome.task.has_alarm is False
    assert backends.full.arm_calls == 0


def test_create_task_inside_safety_margin_is_rejected(scheduler, clock):
    with pytest.raises(InvalidTime, match="at least 10 seconds"):
        task_service.create_task(scheduler, title="Too soon", alarm_time=clock() + timedelta(seconds=5))

    assert scheduler.store.load_tasks() == []


def test_create_task_keeps_task_when_alarm_cannot_be_armed(scheduler, clock):
    scheduler.permissions.set_status(DENIED)

    outcome = task_service.create_task(scheduler, title="Quiet", alarm_time=clock() + timedelta(minutes=5))

    assert outcome.alarm_failed
    assert outcome.schedule.failure == "permission_denied"
    assert scheduler.store.get_task(outcome.task.id) is not None
    assert scheduler.store.get_binding(outcome.task.id) is None


def test_set_alarm_replaces_existing_binding(scheduler, backends, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=5)).task
    new_time = clock() + timedelta(hours=2)

    outcome = task_service.set_task_alarm(scheduler, task.id, new_time)

    assert outcome.task.alarm_time == new_time
    assert list(scheduler.store.get_bindings()) == [task.id]
    assert len(backends.full.triggers_for(task.id)) == 1


def test_set_alarm_on_completed_task_is_rejected(scheduler, clock):
    task = task_service.create_task(scheduler, title="Walk").task
    task_service.complete_task(scheduler, task.id)

    with pytest.raises(InvalidTime):
        task_service.set_task_alarm(scheduler, task.id, clock() + timedelta(minutes=5))


def test_snooze_rounds_to_the_minute(scheduler, clock):
    clock.advance(seconds=42)
    task = task_service.create_task(scheduler, title="Walk").task

    outcome = task_service.snooze_task_alarm(scheduler, task.id, 5)

    assert outcome.task.alarm_time == clock().replace(second=0) + timedelta(minutes=5)
    assert scheduler.store.get_binding(task.id) == outcome.schedule.notification_id


def test_snooze_defaults_to_five_minutes(scheduler, clock):
    task = task_service.create_task(scheduler, title="Walk").task

    outcome = task_service.snooze_task_alarm(scheduler, task.id)

    assert outcome.task.alarm_time == clock() + timedelta(minutes=5)


def test_cancel_alarm_clears_task_and_binding(scheduler, backends, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=5)).task

    updated = task_service.cancel_task_alarm(scheduler, task.id)

    assert updated.has_alarm is False
    assert updated.alarm_time is None
    assert scheduler.store.get_binding(task.id) is None
    assert backends.full.triggers_for(task.id) == []


def test_complete_task_cancels_alarm(scheduler, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=5)).task

    updated = task_service.complete_task(scheduler, task.id)

    assert updated.completed is True
    assert updated.has_alarm is False
    assert scheduler.store.get_bindings() == {}


def test_reopening_task_does_not_restore_alarm(scheduler, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=5)).task
    task_service.complete_task(scheduler, task.id)

    reopened = task_service.complete_task(scheduler, task.id, completed=False)

    assert reopened.completed is False
    assert reopened.has_alarm is False


def test_delete_task_cancels_before_removing(scheduler, backends, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=5)).task
    identifier = scheduler.store.get_binding(task.id)

    task_service.delete_task(scheduler, task.id)

    assert identifier in backends.full.cancelled
    assert scheduler.store.get_task(task.id) is None
    assert scheduler.store.get_bindings() == {}


def test_unknown_task_raises_not_found(scheduler, clock):
    with pytest.raises(TaskNotFound):
        task_service.set_task_alarm(scheduler, "missing", clock() + timedelta(minutes=5))
    with pytest.raises(TaskNotFound):
        task_service.delete_task(scheduler, "missing")


def test_alarm_state_transitions(scheduler, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=5)).task
    assert task_service.alarm_state(task, clock()) is AlarmState.SCHEDULED

    clock.advance(minutes=5)
    assert task_service.handle_alarm_fired(scheduler, task.id) is True
    metadata = scheduler.store.get_alarm_metadata(task.id)
    assert task_service.alarm_state(task, clock(), metadata) is AlarmState.FIRED

    snoozed = task_service.snooze_task_alarm(scheduler, task.id, 10).task
    metadata = scheduler.store.get_alarm_metadata(task.id)
    assert task_service.alarm_state(snoozed, clock(), metadata) is AlarmState.SCHEDULED

    cleared = task_service.cancel_task_alarm(scheduler, task.id)
    assert task_service.alarm_state(cleared, clock()) is AlarmState.NO_ALARM


def test_fired_alarm_for_unknown_task_is_ignored(scheduler):
    assert task_service.handle_alarm_fired(scheduler, "ghost", "full-1") is False


def test_upcoming_alarms_exclude_past_and_completed(scheduler, clock):
    upcoming = task_service.create_task(scheduler, title="Later", alarm_time=clock() + timedelta(hours=1)).task
    done = task_service.create_task(scheduler, title="Done", alarm_time=clock() + timedelta(hours=1)).task
    task_service.complete_task(scheduler, done.id)
    task_service.create_task(scheduler, title="Plain")

    tasks = task_service.tasks_with_upcoming_alarms(scheduler.store, clock())

    assert [task.id for task in tasks] == [upcoming.id]


def test_failed_set_alarm_keeps_record_on_live_trigger(scheduler, backends, clock):
    original_time = clock() + timedelta(minutes=30)
    task = task_service.create_task(scheduler, title="Walk", alarm_time=original_time).task
    scheduler.permissions.set_status(DENIED)

    outcome = task_service.set_task_alarm(scheduler, task.id, clock() + timedelta(hours=2))

    assert outcome.alarm_failed
    stored = scheduler.store.get_task(task.id)
    assert stored.alarm_time == original_time
    identifier = scheduler.store.get_binding(task.id)
    assert identifier == "full-1"
    assert backends.full.triggers[identifier][1] == stored.alarm_time


def test_failed_snooze_keeps_record_on_live_trigger(scheduler, backends, clock):
    original_time = clock() + timedelta(minutes=30)
    task = task_service.create_task(scheduler, title="Walk", alarm_time=original_time).task
    scheduler.permissions.set_status(DENIED)

    outcome = task_service.snooze_task_alarm(scheduler, task.id, 5)

    assert outcome.schedule.failure == "permission_denied"
    stored = scheduler.store.get_task(task.id)
    assert stored.alarm_time == original_time
    assert backends.full.triggers[scheduler.store.get_binding(task.id)][1] == original_time


def test_failed_set_alarm_on_task_without_alarm_stays_alarmless(scheduler, clock):
    task = task_service.create_task(scheduler, title="Walk").task
    scheduler.permissions.set_status(DENIED)

    task_service.set_task_alarm(scheduler, task.id, clock() + timedelta(hours=2))

    stored = scheduler.store.get_task(task.id)
    assert stored.has_alarm is False
    assert stored.alarm_time is None


def test_backend_failure_after_cancel_keeps_requested_time(scheduler, backends, clock):
    task = task_service.create_task(scheduler, title="Walk", alarm_time=clock() + timedelta(minutes=30)).task
    backends.full.fail_arm = True
    backends.standard.fail_arm = True
    new_time = clock() + timedelta(hours=2)

    outcome = task_service.set_task_alarm(scheduler, task.id, new_time)

    assert outcome.schedule.failure == "backend_call_failed"
    assert scheduler.store.get_binding(task.id) is None
    assert scheduler.store.get_task(task.id).alarm_time == new_time


def test_snooze_in_last_second_of_minute_still_arms(scheduler, clock):
    clock.now = clock().replace(second=59, microsecond=600000)
    task = task_service.create_task(scheduler, title="Walk").task

    outcome = task_service.snooze_task_alarm(scheduler, task.id, 1)

    assert not outcome.alarm_failed
    assert outcome.task.alarm_time == clock().replace(second=0, microsecond=0) + timedelta(minutes=2)
