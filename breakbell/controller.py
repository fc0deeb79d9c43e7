from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from kivy.logger import Logger

from .delivery import Acknowledger, Alert
from .engine import StaleState, resolve_stale_state, time_remaining, to_wall_clock
from .errors import PermissionDenied
from .platform import PermissionProbe
from .recovery import Recovery
from .scheduler import ReminderScheduler
from .storage import AlertChannel, ReminderState, Storage


class ReminderController:
    """
    What the screens call. Setters persist immediately; interval and quiet-hour
    changes apply to the next computed fire, never to the one already pending.
    Errors are raised so the UI can prompt the user.
    """

    def __init__(
        self,
        storage: Storage,
        scheduler: ReminderScheduler,
        permissions: PermissionProbe,
        acknowledger: Acknowledger,
        recovery: Recovery,
    ) -> None:
        self.storage = storage
        self.scheduler = scheduler
        self.permissions = permissions
        self.acknowledger = acknowledger
        self.recovery = recovery

    def get_state(self) -> ReminderState:
        return self.storage.get_state()

    def set_active(self, active: bool) -> None:
        if not active:
            self.storage.set_active(False)
            self.scheduler.cancel()
            # Silence an alert still ringing; inactive, so nothing is rescheduled.
            self.acknowledger.acknowledge("pause")
            Logger.info("Controller: reminder paused")
            return

        if not self.permissions.exact_alarm():
            raise PermissionDenied("exact alarm permission is required to start reminders")
        if not self.permissions.notifications():
            Logger.warning("Controller: notifications are blocked, alerts may only show in the app")

        self.storage.set_active(True)
        try:
            state = self.storage.get_state()
            now = self.scheduler.get_now()
            if resolve_stale_state(state.next_fire_at, now) is StaleState.VALID:
                self.scheduler.reassert(state.next_fire_at)
            else:
                self.scheduler.schedule_next(now)
            self.scheduler.schedule_daily_reset(now)
        except Exception:
            Logger.exception("Controller: failed to start reminder")
            self.storage.set_active(False)
            raise
        Logger.info("Controller: reminder started")

    def set_interval(self, seconds: int) -> None:
        seconds = int(seconds)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        self.storage.set_interval_seconds(seconds)

    def set_quiet_hours(self, enabled: bool, start: int, end: int) -> None:
        for hour in (start, end):
            if not 0 <= int(hour) <= 23:
                raise ValueError(f"quiet hour out of range: {hour}")
        self.storage.set_quiet_hours(bool(enabled), int(start), int(end))

    def set_alert_channel(self, channel: AlertChannel) -> None:
        self.storage.set_alert_channel(AlertChannel(channel))

    def set_custom_sound(self, ref: Optional[str]) -> None:
        self.storage.set_custom_sound_ref((ref or "").strip() or None)

    def get_time_remaining(self) -> Optional[timedelta]:
        state = self.storage.get_state()
        if not state.active:
            return None
        ms = time_remaining(state.next_fire_at, self.scheduler.get_now())
        return timedelta(milliseconds=ms) if ms is not None else None

    def get_next_fire_wall_clock(self) -> Optional[datetime]:
        state = self.storage.get_state()
        if not state.active or state.next_fire_at <= 0:
            return None
        return to_wall_clock(state.next_fire_at)

    def has_pending_alert(self) -> bool:
        return self.storage.get_state().pending_alert_at > 0

    def pending_alert(self) -> Optional[Alert]:
        """The alert still waiting for an answer, whichever process presented it."""
        state = self.storage.get_state()
        if state.pending_alert_at <= 0:
            return None
        return Alert(
            fired_at=state.pending_alert_at,
            channel=state.alert_channel,
            custom_sound_ref=state.custom_sound_ref,
        )

    def acknowledge(self, source: str = "app") -> bool:
        return self.acknowledger.acknowledge(source)

    def permission_report(self) -> dict[str, bool]:
        return self.permissions.report()

    def schedule_test_alarm(self, seconds: int) -> int:
        if not self.permissions.exact_alarm():
            raise PermissionDenied("exact alarm permission is required for the test alarm")
        if not self.storage.get_state().active:
            # A paused reminder discards every fire, the test one included.
            raise ValueError("start the reminder before scheduling a test alarm")
        return self.scheduler.schedule_test_alarm(seconds)

    def diagnostic_report(self) -> str:
        return self.recovery.diagnostic_report()
