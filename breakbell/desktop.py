from __future__ import annotations

from typing import Callable, Optional

from kivy.logger import Logger

from .delivery import Alert, AlertSurface, DeliveryContext, DeliveryResult
from .platform import PermissionProbe, WakeLock

try:
    from plyer import notification as plyer_notification  # type: ignore
except Exception:  # pragma: no cover
    plyer_notification = None

APP_NAME = "Breakbell"


class DesktopPermissions(PermissionProbe):
    """Desktops gate none of this; only foreground depends on whether the UI is running."""

    def __init__(self, is_foreground: Callable[[], bool] = lambda: False) -> None:
        self._is_foreground = is_foreground

    def exact_alarm(self) -> bool:
        return True

    def notifications(self) -> bool:
        return plyer_notification is not None

    def full_screen_intent(self) -> bool:
        return False

    def overlay(self) -> bool:
        return False

    def battery_exempt(self) -> bool:
        return True

    def device_locked(self) -> bool:
        return False

    def foreground(self) -> bool:
        return self._is_foreground()


class NullWakeLock(WakeLock):
    def acquire(self, timeout_s: int) -> None:
        pass

    def release(self) -> None:
        pass


class PresenterSurface(AlertSurface):
    """
    Foreground presentation through a callable installed by the running UI
    (the KivyMD alert dialog). Unavailable while no UI is attached.
    """

    name = "foreground"

    def __init__(self) -> None:
        self.present: Optional[Callable[[Alert], bool]] = None
        self.close: Optional[Callable[[], None]] = None

    def attach(self, present: Callable[[Alert], bool], close: Callable[[], None]) -> None:
        self.present = present
        self.close = close

    def detach(self) -> None:
        self.present = None
        self.close = None

    def can_attempt(self, ctx: DeliveryContext) -> bool:
        return ctx.foreground and self.present is not None

    def attempt(self, alert: Alert) -> DeliveryResult:
        if self.present is not None and self.present(alert):
            return DeliveryResult.DELIVERED
        return DeliveryResult.FAILED

    def dismiss(self) -> None:
        if self.close is not None:
            self.close()


class PlyerNotificationSurface(AlertSurface):
    name = "notification"

    def can_attempt(self, ctx: DeliveryContext) -> bool:
        return ctx.notifications and plyer_notification is not None

    def attempt(self, alert: Alert) -> DeliveryResult:
        try:
            plyer_notification.notify(title=alert.title, message=alert.message, app_name=APP_NAME, timeout=60)
        except Exception:
            Logger.exception("Delivery: plyer notification failed")
            return DeliveryResult.FAILED
        return DeliveryResult.DELIVERED

    # plyer cannot withdraw a posted desktop notification, so dismiss() stays a no-op.
