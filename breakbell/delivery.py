"""
Best-effort presentation of a fired reminder.

Surfaces are tried in a fixed priority order; each one declares whether it can
run under the current permission/lock state, and the first surface that
reports DELIVERED wins. Whichever surface the user answers, acknowledgment goes
through ``Acknowledger`` so only one reschedule happens per alert.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from kivy.logger import Logger

from .alert import AlertPlayer
from .errors import DeliveryFailure
from .platform import PermissionProbe
from .scheduler import ReminderScheduler
from .storage import AlertChannel, Storage

ALERT_TITLE = "Time to go!"
ALERT_MESSAGE = "Break reminder - tap to open"


class DeliveryResult(str, Enum):
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Alert:
    fired_at: int
    channel: AlertChannel
    custom_sound_ref: Optional[str] = None
    title: str = ALERT_TITLE
    message: str = ALERT_MESSAGE


@dataclass(frozen=True)
class DeliveryContext:
    foreground: bool
    notifications: bool
    full_screen_intent: bool
    overlay: bool
    device_locked: bool

    @classmethod
    def probe(cls, permissions: PermissionProbe) -> "DeliveryContext":
        return cls(
            foreground=permissions.foreground(),
            notifications=permissions.notifications(),
            full_screen_intent=permissions.full_screen_intent(),
            overlay=permissions.overlay(),
            device_locked=permissions.device_locked(),
        )


class AlertSurface(ABC):
    name = "surface"

    @abstractmethod
    def can_attempt(self, ctx: DeliveryContext) -> bool:
        ...

    @abstractmethod
    def attempt(self, alert: Alert) -> DeliveryResult:
        ...

    def dismiss(self) -> None:
        """Tear the surface down; called on acknowledgment even if it never showed."""


def attempt_with_retries(
    fn: Callable[[], bool],
    attempts: int = 3,
    delay_s: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call ``fn`` until it returns True, at most ``attempts`` times."""
    for i in range(1, attempts + 1):
        try:
            if fn():
                return True
        except Exception as exc:
            Logger.warning(f"Delivery: attempt {i}/{attempts} raised {exc!r}")
        if i < attempts:
            sleep(delay_s)
    return False


class DeliveryDispatcher:
    def __init__(
        self,
        storage: Storage,
        surfaces: Sequence[AlertSurface],
        permissions: PermissionProbe,
        player: AlertPlayer,
    ) -> None:
        self.storage = storage
        self.surfaces = list(surfaces)
        self.permissions = permissions
        self.player = player

    def dispatch(self, alert: Alert) -> str:
        ctx = DeliveryContext.probe(self.permissions)
        Logger.info(f"Delivery: dispatching alert, context={ctx}")
        # Marked before presenting: a surface may be answered before attempt() returns.
        self.storage.set_pending_alert_at(alert.fired_at)
        tried: list[str] = []
        for surface in self.surfaces:
            if not surface.can_attempt(ctx):
                Logger.debug(f"Delivery: {surface.name} not available")
                continue
            tried.append(surface.name)
            try:
                result = surface.attempt(alert)
            except Exception:
                Logger.exception(f"Delivery: {surface.name} raised")
                result = DeliveryResult.FAILED
            if result is DeliveryResult.DELIVERED:
                Logger.info(f"Delivery: presented via {surface.name}")
                if self.storage.get_state().pending_alert_at:
                    self.player.start_alert(alert.channel, alert.custom_sound_ref)
                return surface.name
            Logger.warning(f"Delivery: {surface.name} failed")

        self.storage.set_pending_alert_at(0)
        raise DeliveryFailure("no alert surface could present the reminder", tuple(tried))


class Acknowledger:
    def __init__(
        self,
        storage: Storage,
        scheduler: ReminderScheduler,
        player: AlertPlayer,
        surfaces: Sequence[AlertSurface],
    ) -> None:
        self.storage = storage
        self.scheduler = scheduler
        self.player = player
        self.surfaces = list(surfaces)

    def acknowledge(self, source: str = "ui", now: Optional[int] = None) -> bool:
        if not self.storage.claim_pending_alert():
            Logger.debug(f"Delivery: acknowledgment from {source} ignored, alert already handled")
            return False
        now = self.scheduler.get_now() if now is None else now
        Logger.info(f"Delivery: alert acknowledged via {source}")
        self._tear_down()
        if self.storage.get_state().active:
            self.scheduler.schedule_next(now)
        return True

    def expire_stale(self, stale_ms: int, now: Optional[int] = None) -> bool:
        """Give up on an alert nobody answered; the next one is an interval away."""
        now = self.scheduler.get_now() if now is None else now
        pending = self.storage.get_state().pending_alert_at
        if not pending or now - pending < stale_ms:
            return False
        Logger.warning(f"Delivery: alert unanswered for {(now - pending) // 1000}s, giving up")
        return self.acknowledge("timeout", now)

    def sync_playback(self) -> None:
        """Stop local playback once another process has acknowledged the alert."""
        if self.player.is_playing and not self.storage.get_state().pending_alert_at:
            Logger.info("Delivery: alert acknowledged elsewhere, stopping playback")
            self._tear_down()

    def _tear_down(self) -> None:
        self.player.stop_alert()
        for surface in self.surfaces:
            try:
                surface.dismiss()
            except Exception:
                Logger.exception(f"Delivery: dismissing {surface.name} failed")
