from __future__ import annotations

from kivy.logger import Logger

from .config import Tuning
from .engine import align_to_reset_boundary, local_date
from .platform import WakeLock
from .scheduler import ReminderScheduler
from .storage import Storage
from .wakeup import ACTION_DAILY_RESET


class DailyResetHandler:
    """
    Realigns the reminder cadence once a day at the end of quiet hours so
    acknowledgment delays do not drift the schedule across days.
    """

    def __init__(
        self,
        storage: Storage,
        scheduler: ReminderScheduler,
        wake_lock: WakeLock,
        tuning: Tuning,
    ) -> None:
        self.storage = storage
        self.scheduler = scheduler
        self.wake_lock = wake_lock
        self.tuning = tuning

    def handle(self, action: str) -> bool:
        """Returns True when the reset ran, False when it was rejected or already done today."""
        if action != ACTION_DAILY_RESET:
            Logger.warning(f"DailyReset: ignoring unexpected action {action!r}")
            return False

        with self.wake_lock.hold(self.tuning.daily_wake_lock_seconds):
            now = self.scheduler.get_now()
            today = local_date(now)
            state = self.storage.get_state()
            if state.last_daily_reset_date == today:
                Logger.info(f"DailyReset: already ran on {today}")
                return False

            try:
                if state.active:
                    self.scheduler.reminder_backend.cancel()
                    first = align_to_reset_boundary(now, state.quiet_hours_end, state.interval_seconds)
                    self.scheduler.schedule_at(first)
                self.storage.set_last_daily_reset_date(today)
                Logger.info(f"DailyReset: cadence realigned for {today}")
            except Exception:
                Logger.exception("DailyReset: realignment failed")

            try:
                self.scheduler.schedule_daily_reset(now)
            except Exception:
                Logger.exception("DailyReset: could not register tomorrow's reset")
            return True
