from __future__ import annotations

from dataclasses import dataclass

from kivy.logger import Logger

from .config import Tuning
from .engine import StaleState, is_missed_fire, resolve_stale_state, to_wall_clock
from .platform import PermissionProbe
from .scheduler import ReminderScheduler
from .storage import ReminderState, Storage


@dataclass(frozen=True)
class AlarmStatus:
    reminder_active: bool = False
    has_saved_timestamp: bool = False
    saved_timestamp: int = 0
    in_future: bool = False
    time_until_ms: int = 0
    backend_registered: bool = False
    exact_alarm_permission: bool = False

    @property
    def properly_scheduled(self) -> bool:
        return (
            self.reminder_active
            and self.has_saved_timestamp
            and self.in_future
            and self.exact_alarm_permission
        )


class Recovery:
    """
    Self-healing for wake-ups the platform silently dropped. Runs at process
    start, boot and whenever the UI comes to the foreground; never raises.
    """

    def __init__(
        self,
        storage: Storage,
        scheduler: ReminderScheduler,
        permissions: PermissionProbe,
        tuning: Tuning,
    ) -> None:
        self.storage = storage
        self.scheduler = scheduler
        self.permissions = permissions
        self.tuning = tuning

    def _alert_outstanding(self, state: ReminderState, now: int) -> bool:
        # An unanswered alert owns the schedule until it goes stale.
        at = state.pending_alert_at
        return at > 0 and now - at < self.tuning.alert_stale_seconds * 1000

    def ensure_scheduled(self) -> bool:
        state = self.storage.get_state()
        if not state.active:
            return False
        now = self.scheduler.get_now()
        verdict = resolve_stale_state(state.next_fire_at, now)
        if verdict is StaleState.VALID:
            # The stored time may be fine while the OS registration is gone.
            self.scheduler.reassert(state.next_fire_at)
            return True
        if self._alert_outstanding(state, now):
            Logger.info("Recovery: alert awaiting acknowledgment, leaving schedule alone")
            return True
        Logger.warning(f"Recovery: schedule {verdict.value.lower()}, rescheduling")
        self.scheduler.schedule_next(now)
        return True

    def detect_missed_fire(self) -> bool:
        state = self.storage.get_state()
        if not state.active:
            return False
        now = self.scheduler.get_now()
        if not is_missed_fire(state.next_fire_at, now, self.tuning.missed_grace_seconds * 1000):
            return False
        if self._alert_outstanding(state, now):
            return False
        late_min = (now - state.next_fire_at) // 60000
        Logger.warning(
            f"Recovery: wake-up for {to_wall_clock(state.next_fire_at):%H:%M:%S} never arrived "
            f"({late_min} min late), the platform likely blocked it"
        )
        self.scheduler.schedule_next(now)
        return True

    def verify_status(self) -> AlarmStatus:
        state = self.storage.get_state()
        now = self.scheduler.get_now()
        saved = state.next_fire_at
        return AlarmStatus(
            reminder_active=state.active,
            has_saved_timestamp=saved > 0,
            saved_timestamp=saved,
            in_future=saved > now,
            time_until_ms=saved - now if saved > 0 else 0,
            backend_registered=self.scheduler.reminder_backend.is_registered(),
            exact_alarm_permission=self.permissions.exact_alarm(),
        )

    def diagnostic_report(self) -> str:
        s = self.verify_status()
        lines = ["=== Alarm Diagnostic Report ==="]
        lines.append(f"Reminder active: {s.reminder_active}")
        lines.append(f"Exact alarm permission: {s.exact_alarm_permission}")
        if s.has_saved_timestamp:
            lines.append(f"Saved alarm time: {to_wall_clock(s.saved_timestamp):%Y-%m-%d %H:%M:%S}")
            lines.append(f"Alarm is in future: {s.in_future}")
            if s.in_future:
                lines.append(f"Time until alarm: {s.time_until_ms // 60000} minutes")
        else:
            lines.append("No saved alarm timestamp")
        lines.append(f"Wake-up registered: {s.backend_registered}")
        lines.append(f"Alarm properly scheduled: {s.properly_scheduled}")
        lines.append("")
        lines.append("=== Recommendations ===")
        if not s.reminder_active:
            lines.append("Reminder is not active - alarms will not trigger")
        if not s.exact_alarm_permission:
            lines.append("Exact alarm permission not granted - enable 'Alarms & reminders' for the app")
        if not s.has_saved_timestamp or not s.in_future:
            lines.append("No valid alarm scheduled - reschedule the alarm")
        if not s.backend_registered and s.reminder_active:
            lines.append("Wake-up registration not found - it will be re-registered on next start")
        return "\n".join(lines)

    def on_resume(self) -> None:
        # Missed-fire detection must see the stale timestamp before ensure_scheduled replaces it.
        for step in (self.detect_missed_fire, self.ensure_scheduled, self.scheduler.schedule_daily_reset):
            try:
                step()
            except Exception:
                Logger.exception(f"Recovery: {step.__name__} failed")
        status = self.verify_status()
        if status.reminder_active and not status.properly_scheduled:
            Logger.warning("Recovery: alarm check failed\n" + self.diagnostic_report())

    def on_process_start(self) -> None:
        Logger.info("Recovery: process start")
        self.on_resume()

    def on_system_boot(self) -> None:
        Logger.info("Recovery: device booted")
        self.on_resume()
