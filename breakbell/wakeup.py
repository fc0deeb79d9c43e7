from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from kivy.logger import Logger

from .storage import Storage

ACTION_ALARM = "breakbell.ALARM_TRIGGERED"
ACTION_DAILY_RESET = "breakbell.DAILY_RESET"
ACTION_BOOT = "breakbell.BOOT_COMPLETED"


@dataclass(frozen=True)
class Timeline:
    key: str
    action: str
    request_code: int


REMINDER_TIMELINE = Timeline("reminder", ACTION_ALARM, 1001)
DAILY_RESET_TIMELINE = Timeline("daily_reset", ACTION_DAILY_RESET, 1002)


class WakeBackend(ABC):
    """
    One wake-from-sleep timer per timeline. Registering again replaces the
    outstanding request; there is never more than one.
    """

    def __init__(self, timeline: Timeline) -> None:
        self.timeline = timeline

    @abstractmethod
    def register(self, fire_at: int) -> None:
        """Raise PermissionDenied or RegistrationFailure when the platform refuses."""

    @abstractmethod
    def cancel(self) -> None:
        ...

    @abstractmethod
    def is_registered(self) -> bool:
        """Best effort; a False may be a false negative on some platforms."""


class StorageWakeBackend(WakeBackend):
    """
    Wake timers kept in the ``wakeups`` table and fired by the service loop
    (``fire_due``). Used on desktop, where no OS alarm service exists, and in
    tests.
    """

    def __init__(self, storage: Storage, timeline: Timeline) -> None:
        super().__init__(timeline)
        self.storage = storage

    def register(self, fire_at: int) -> None:
        self.storage.put_wakeup(self.timeline.key, self.timeline.action, fire_at)
        Logger.debug(f"Wakeup: {self.timeline.key} registered for {fire_at}")

    def cancel(self) -> None:
        self.storage.delete_wakeup(self.timeline.key)
        Logger.debug(f"Wakeup: {self.timeline.key} cancelled")

    def is_registered(self) -> bool:
        return self.storage.get_wakeup(self.timeline.key) is not None

    def registered_for(self) -> int:
        row = self.storage.get_wakeup(self.timeline.key)
        return row.fire_at if row else 0


def fire_due(storage: Storage, now: int) -> list[str]:
    """Consume every registration that is due and return their actions in firing order."""
    due = storage.pop_due_wakeups(now)
    for w in due:
        Logger.info(f"Wakeup: {w.key} fired ({now - w.fire_at} ms late)")
    return [w.action for w in due]
