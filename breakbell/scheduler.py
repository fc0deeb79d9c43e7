from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from kivy.logger import Logger

from .engine import compute_next_fire, next_daily_anchor, to_wall_clock
from .errors import RegistrationFailure
from .storage import Storage
from .wakeup import WakeBackend


def now_ms() -> int:
    return int(time.time() * 1000)


class ReminderScheduler:
    """
    Computes, registers and persists fire times.
    Registration always happens before the timestamp is written, so a stored
    ``next_fire_at`` never points at a timer the platform refused.
    """

    def __init__(
        self,
        storage: Storage,
        reminder_backend: WakeBackend,
        daily_backend: WakeBackend,
        get_now: Callable[[], int] = now_ms,
    ) -> None:
        self.storage = storage
        self.reminder_backend = reminder_backend
        self.daily_backend = daily_backend
        self.get_now = get_now
        self._lock = threading.RLock()

    def schedule_at(self, fire_at: int) -> int:
        with self._lock:
            self._register(self.reminder_backend, fire_at)
            self.storage.set_next_fire_at(fire_at)
        Logger.info(f"Scheduler: next reminder at {to_wall_clock(fire_at):%Y-%m-%d %H:%M:%S}")
        return fire_at

    def schedule_next(self, now: Optional[int] = None) -> int:
        now = self.get_now() if now is None else now
        interval = self.storage.get_state().interval_seconds
        return self.schedule_at(compute_next_fire(now, interval))

    def reassert(self, fire_at: int) -> None:
        """Register an already persisted fire time again without changing it."""
        with self._lock:
            self._register(self.reminder_backend, fire_at)
        Logger.debug(f"Scheduler: re-asserted reminder at {fire_at}")

    def cancel(self) -> None:
        with self._lock:
            self.reminder_backend.cancel()
            self.storage.set_next_fire_at(0)
        Logger.info("Scheduler: reminder cancelled")

    def schedule_daily_reset(self, now: Optional[int] = None) -> int:
        now = self.get_now() if now is None else now
        reset_hour = self.storage.get_state().quiet_hours_end
        anchor = next_daily_anchor(now, reset_hour)
        with self._lock:
            self._register(self.daily_backend, anchor)
        Logger.info(f"Scheduler: daily reset at {to_wall_clock(anchor):%Y-%m-%d %H:%M}")
        return anchor

    def schedule_test_alarm(self, seconds: int = 10, now: Optional[int] = None) -> int:
        now = self.get_now() if now is None else now
        Logger.info(f"Scheduler: test alarm in {seconds}s, close the app to check it still fires")
        return self.schedule_at(now + seconds * 1000)

    def _register(self, backend: WakeBackend, fire_at: int) -> None:
        # PermissionDenied is not retried; the user has to act first.
        try:
            backend.register(fire_at)
        except RegistrationFailure as exc:
            Logger.warning(f"Scheduler: registering {backend.timeline.key} failed ({exc}), retrying once")
            backend.register(fire_at)
