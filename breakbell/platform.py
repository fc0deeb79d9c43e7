from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator


class PermissionProbe(ABC):
    """Read-only permission and device-state checks. Requesting is the UI's job."""

    @abstractmethod
    def exact_alarm(self) -> bool: ...

    @abstractmethod
    def notifications(self) -> bool: ...

    @abstractmethod
    def full_screen_intent(self) -> bool: ...

    @abstractmethod
    def overlay(self) -> bool: ...

    @abstractmethod
    def battery_exempt(self) -> bool: ...

    @abstractmethod
    def device_locked(self) -> bool: ...

    @abstractmethod
    def foreground(self) -> bool: ...

    def report(self) -> dict[str, bool]:
        return {
            "exact_alarm": self.exact_alarm(),
            "notifications": self.notifications(),
            "full_screen_intent": self.full_screen_intent(),
            "overlay": self.overlay(),
            "battery_exempt": self.battery_exempt(),
        }


class WakeLock(ABC):
    """Keeps the CPU awake for a bounded time while an activation runs."""

    @abstractmethod
    def acquire(self, timeout_s: int) -> None: ...

    @abstractmethod
    def release(self) -> None: ...

    @contextmanager
    def hold(self, timeout_s: int) -> Iterator[None]:
        self.acquire(timeout_s)
        try:
            yield
        finally:
            self.release()
