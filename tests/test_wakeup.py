from breakbell.wakeup import (
    ACTION_ALARM,
    ACTION_DAILY_RESET,
    DAILY_RESET_TIMELINE,
    REMINDER_TIMELINE,
    StorageWakeBackend,
    fire_due,
)


def test_repeated_scheduling_keeps_one_registration(runtime, clock):
    sched = runtime.scheduler
    for i in range(5):
        sched.schedule_next(clock.now + i * 1000)
    sched.schedule_test_alarm(10)
    sched.reassert(clock.now + 99_000)

    rows = [w for w in runtime.storage.list_wakeups() if w.key == REMINDER_TIMELINE.key]
    assert len(rows) == 1
    assert rows[0].fire_at == clock.now + 99_000


def test_timelines_are_independent(storage):
    reminder = StorageWakeBackend(storage, REMINDER_TIMELINE)
    daily = StorageWakeBackend(storage, DAILY_RESET_TIMELINE)
    reminder.register(100)
    daily.register(200)

    reminder.cancel()
    assert not reminder.is_registered()
    assert daily.is_registered()
    assert daily.registered_for() == 200


def test_cancel_without_registration_is_harmless(storage):
    backend = StorageWakeBackend(storage, REMINDER_TIMELINE)
    backend.cancel()
    assert not backend.is_registered()
    assert backend.registered_for() == 0


def test_fire_due_returns_actions_once(storage):
    StorageWakeBackend(storage, REMINDER_TIMELINE).register(100)
    StorageWakeBackend(storage, DAILY_RESET_TIMELINE).register(50)

    assert fire_due(storage, 10) == []
    assert fire_due(storage, 100) == [ACTION_DAILY_RESET, ACTION_ALARM]
    assert fire_due(storage, 100) == []
