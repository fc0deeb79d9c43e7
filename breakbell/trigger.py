from __future__ import annotations

from enum import Enum

from kivy.logger import Logger

from .config import Tuning
from .delivery import Alert, DeliveryDispatcher
from .engine import is_within_quiet_hours
from .errors import DeliveryFailure
from .platform import WakeLock
from .scheduler import ReminderScheduler
from .storage import Storage
from .wakeup import ACTION_ALARM


class TriggerOutcome(str, Enum):
    REJECTED = "REJECTED"
    DISCARDED = "DISCARDED"
    SILENCED = "SILENCED"
    DELIVERED = "DELIVERED"
    RESCHEDULED = "RESCHEDULED"
    FAILED = "FAILED"


class TriggerHandler:
    """
    Runs when the reminder wake-up fires, possibly in a process that was just
    spawned for it. Every decision is taken from storage.

    A delivered alert does not schedule the next one; the acknowledgment does,
    so the interval counts from when the user answered. Failures fall back to
    "one interval from now" so a single bad activation never ends the schedule.
    """

    def __init__(
        self,
        storage: Storage,
        scheduler: ReminderScheduler,
        dispatcher: DeliveryDispatcher,
        wake_lock: WakeLock,
        tuning: Tuning,
    ) -> None:
        self.storage = storage
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.wake_lock = wake_lock
        self.tuning = tuning

    def handle(self, action: str) -> TriggerOutcome:
        if action != ACTION_ALARM:
            Logger.warning(f"Trigger: ignoring unexpected action {action!r}")
            return TriggerOutcome.REJECTED

        with self.wake_lock.hold(self.tuning.wake_lock_seconds):
            now = self.scheduler.get_now()
            try:
                state = self.storage.get_state()
                if not state.active:
                    Logger.info("Trigger: reminder paused, discarding fire")
                    return TriggerOutcome.DISCARDED

                if is_within_quiet_hours(now, state):
                    Logger.info("Trigger: inside quiet hours, rescheduling silently")
                    self.scheduler.schedule_next(now)
                    return TriggerOutcome.SILENCED

                alert = Alert(
                    fired_at=now,
                    channel=state.alert_channel,
                    custom_sound_ref=state.custom_sound_ref,
                )
                self.dispatcher.dispatch(alert)
                return TriggerOutcome.DELIVERED
            except DeliveryFailure as exc:
                Logger.error(f"Trigger: alert not delivered (tried {', '.join(exc.tried) or 'nothing'})")
            except Exception:
                Logger.exception("Trigger: handling the fire failed")
            return self._fallback_reschedule(now)

    def _fallback_reschedule(self, now: int) -> TriggerOutcome:
        try:
            if not self.storage.get_state().active:
                return TriggerOutcome.FAILED
            self.scheduler.schedule_next(now)
        except Exception:
            Logger.exception("Trigger: fallback reschedule failed, recovery will retry")
            return TriggerOutcome.FAILED
        return TriggerOutcome.RESCHEDULED
