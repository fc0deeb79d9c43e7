from breakbell.wakeup import ACTION_ALARM, ACTION_DAILY_RESET, DAILY_RESET_TIMELINE, REMINDER_TIMELINE

from conftest import local_ms


def test_reset_realigns_cadence_once_per_day(runtime, clock, wake_lock, tuning):
    clock.now = local_ms(2024, 6, 12, 6, 59)
    runtime.controller.set_active(True)
    assert runtime.storage.get_state().next_fire_at == local_ms(2024, 6, 12, 8, 59)

    clock.now = local_ms(2024, 6, 12, 7, 0, 5)
    assert runtime.daily_reset.handle(ACTION_DAILY_RESET) is True

    state = runtime.storage.get_state()
    assert state.next_fire_at == local_ms(2024, 6, 12, 9, 0)
    assert state.last_daily_reset_date == "2024-06-12"
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key).fire_at == local_ms(2024, 6, 12, 9, 0)
    assert runtime.storage.get_wakeup(DAILY_RESET_TIMELINE.key).fire_at == local_ms(2024, 6, 13, 7, 0)
    assert wake_lock.held == [tuning.daily_wake_lock_seconds]

    wakeups = runtime.storage.list_wakeups()
    clock.advance(60 * 1000)
    assert runtime.daily_reset.handle(ACTION_DAILY_RESET) is False
    assert runtime.storage.get_state() == state
    assert runtime.storage.list_wakeups() == wakeups


def test_late_reset_keeps_todays_reminders(runtime, clock):
    runtime.storage.set_active(True)
    runtime.storage.set_next_fire_at(local_ms(2024, 6, 12, 11, 0))

    # The 07:00 reset only gets to run at 09:30.
    clock.now = local_ms(2024, 6, 12, 9, 30)
    assert runtime.daily_reset.handle(ACTION_DAILY_RESET) is True

    assert runtime.storage.get_state().next_fire_at == local_ms(2024, 6, 12, 11, 0)
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key).fire_at == local_ms(2024, 6, 12, 11, 0)
    assert runtime.storage.get_wakeup(DAILY_RESET_TIMELINE.key).fire_at == local_ms(2024, 6, 13, 7, 0)


def test_reset_pumped_in_the_evening_stays_on_todays_grid(runtime, clock):
    runtime.storage.set_active(True)
    clock.now = local_ms(2024, 6, 12, 20, 10)
    runtime.daily_reset.handle(ACTION_DAILY_RESET)
    assert runtime.storage.get_state().next_fire_at == local_ms(2024, 6, 12, 21, 0)


def test_reset_while_paused_only_reregisters_itself(runtime, clock):
    clock.now = local_ms(2024, 6, 12, 7, 0)
    assert runtime.daily_reset.handle(ACTION_DAILY_RESET) is True

    state = runtime.storage.get_state()
    assert state.next_fire_at == 0
    assert state.last_daily_reset_date == "2024-06-12"
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key) is None
    assert runtime.storage.get_wakeup(DAILY_RESET_TIMELINE.key).fire_at == local_ms(2024, 6, 13, 7, 0)


def test_reset_follows_quiet_hours_end(runtime, clock):
    runtime.controller.set_quiet_hours(True, 23, 8)
    clock.now = local_ms(2024, 6, 12, 7, 0)
    runtime.controller.set_active(True)
    assert runtime.storage.get_wakeup(DAILY_RESET_TIMELINE.key).fire_at == local_ms(2024, 6, 12, 8, 0)

    clock.now = local_ms(2024, 6, 12, 8, 0)
    runtime.tick()
    assert runtime.storage.get_state().next_fire_at == local_ms(2024, 6, 12, 10, 0)


def test_reset_rejects_other_actions(runtime):
    assert runtime.daily_reset.handle(ACTION_ALARM) is False
    assert runtime.storage.get_state().last_daily_reset_date == ""
