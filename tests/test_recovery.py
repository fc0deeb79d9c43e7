from breakbell.engine import is_missed_fire
from breakbell.wakeup import REMINDER_TIMELINE

INTERVAL_MS = 7200 * 1000


def _arm(storage, next_fire_at):
    storage.set_active(True)
    storage.set_next_fire_at(next_fire_at)


def test_cold_start_with_expired_timestamp_reschedules(runtime, clock, tuning):
    old = clock.now - 500000
    _arm(runtime.storage, old)
    assert is_missed_fire(old, clock.now, tuning.missed_grace_seconds * 1000)

    assert runtime.recovery.ensure_scheduled() is True
    state = runtime.storage.get_state()
    assert state.next_fire_at == clock.now + INTERVAL_MS
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key).fire_at == state.next_fire_at


def test_detect_missed_fire_reschedules_from_now(runtime, clock):
    _arm(runtime.storage, clock.now - 500000)
    assert runtime.recovery.detect_missed_fire() is True
    assert runtime.storage.get_state().next_fire_at == clock.now + INTERVAL_MS
    assert runtime.recovery.detect_missed_fire() is False


def test_fire_within_grace_is_not_missed(runtime, clock):
    _arm(runtime.storage, clock.now - 5000)
    assert runtime.recovery.detect_missed_fire() is False


def test_valid_timestamp_is_reasserted_unchanged(runtime, clock):
    future = clock.now + 30 * 60 * 1000
    _arm(runtime.storage, future)
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key) is None

    assert runtime.recovery.ensure_scheduled() is True
    assert runtime.storage.get_state().next_fire_at == future
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key).fire_at == future


def test_paused_reminder_is_left_alone(runtime, clock):
    runtime.storage.set_next_fire_at(clock.now - 500000)
    assert runtime.recovery.ensure_scheduled() is False
    assert runtime.recovery.detect_missed_fire() is False
    assert runtime.storage.list_wakeups() == []


def test_outstanding_alert_blocks_rescheduling(runtime, clock):
    _arm(runtime.storage, clock.now - 500000)
    runtime.storage.set_pending_alert_at(clock.now - 60000)

    runtime.recovery.on_resume()
    assert runtime.storage.get_state().next_fire_at == clock.now - 500000
    assert runtime.storage.get_wakeup(REMINDER_TIMELINE.key) is None


def test_resume_heals_and_registers_daily_reset(runtime, clock):
    _arm(runtime.storage, clock.now - 500000)
    runtime.recovery.on_resume()

    status = runtime.recovery.verify_status()
    assert status.properly_scheduled
    assert status.backend_registered
    assert status.time_until_ms == INTERVAL_MS
    keys = {w.key for w in runtime.storage.list_wakeups()}
    assert keys == {"reminder", "daily_reset"}


def test_resume_never_raises(runtime, clock, monkeypatch):
    _arm(runtime.storage, clock.now - 500000)

    def broken(*args, **kwargs):
        raise RuntimeError("alarm service gone")

    monkeypatch.setattr(runtime.scheduler, "schedule_next", broken)
    monkeypatch.setattr(runtime.scheduler, "schedule_daily_reset", broken)
    runtime.recovery.on_resume()


def test_diagnostic_report_lists_problems(runtime, permissions):
    permissions.values["exact_alarm"] = False
    report = runtime.recovery.diagnostic_report()
    assert report.startswith("=== Alarm Diagnostic Report ===")
    assert "Reminder active: False" in report
    assert "No saved alarm timestamp" in report
    assert "Reminder is not active - alarms will not trigger" in report
    assert "Exact alarm permission not granted" in report


def test_diagnostic_report_for_healthy_schedule(runtime, clock):
    runtime.controller.set_active(True)
    report = runtime.controller.diagnostic_report()
    assert "Alarm properly scheduled: True" in report
    assert "Time until alarm: 120 minutes" in report
    assert "Wake-up registered: True" in report
