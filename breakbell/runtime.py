from __future__ import annotations

from typing import Callable, Optional, Sequence

from kivy.logger import Logger
from kivy.utils import platform as kivy_platform

from .alert import AlertPlayer, KivyAlertPlayer
from .config import Tuning, load_tuning
from .controller import ReminderController
from .daily_reset import DailyResetHandler
from .delivery import Acknowledger, AlertSurface, DeliveryDispatcher
from .platform import PermissionProbe, WakeLock
from .recovery import Recovery
from .scheduler import ReminderScheduler, now_ms
from .storage import Storage
from .trigger import TriggerHandler
from .wakeup import (
    ACTION_ALARM,
    ACTION_BOOT,
    ACTION_DAILY_RESET,
    DAILY_RESET_TIMELINE,
    REMINDER_TIMELINE,
    StorageWakeBackend,
    WakeBackend,
    fire_due,
)


class Runtime:
    """All components for one process, built around a single Storage."""

    def __init__(
        self,
        storage: Storage,
        reminder_backend: WakeBackend,
        daily_backend: WakeBackend,
        permissions: PermissionProbe,
        wake_lock: WakeLock,
        player: AlertPlayer,
        surfaces: Sequence[AlertSurface],
        get_now: Callable[[], int] = now_ms,
        tuning: Optional[Tuning] = None,
    ) -> None:
        self.storage = storage
        self.tuning = tuning or load_tuning(storage)
        self.permissions = permissions
        self.player = player
        self.surfaces = list(surfaces)
        self.scheduler = ReminderScheduler(storage, reminder_backend, daily_backend, get_now=get_now)
        self.dispatcher = DeliveryDispatcher(storage, self.surfaces, permissions, player)
        self.acknowledger = Acknowledger(storage, self.scheduler, player, self.surfaces)
        self.trigger = TriggerHandler(storage, self.scheduler, self.dispatcher, wake_lock, self.tuning)
        self.daily_reset = DailyResetHandler(storage, self.scheduler, wake_lock, self.tuning)
        self.recovery = Recovery(storage, self.scheduler, permissions, self.tuning)
        self.controller = ReminderController(
            storage, self.scheduler, permissions, self.acknowledger, self.recovery
        )
        # Desktop timers live in the wakeups table and need pumping.
        self.pumps_wakeups = isinstance(reminder_backend, StorageWakeBackend)

    def handle_action(self, action: str) -> None:
        Logger.info(f"Runtime: handling {action}")
        if action == ACTION_ALARM:
            self.trigger.handle(action)
        elif action == ACTION_DAILY_RESET:
            self.daily_reset.handle(action)
        elif action == ACTION_BOOT:
            self.recovery.on_system_boot()
        else:
            Logger.warning(f"Runtime: unknown action {action!r}")

    def on_process_start(self) -> None:
        self.recovery.on_process_start()

    def tick(self) -> None:
        if self.pumps_wakeups:
            for action in fire_due(self.storage, self.scheduler.get_now()):
                self.handle_action(action)
        try:
            self.acknowledger.expire_stale(self.tuning.alert_stale_seconds * 1000)
        except Exception:
            Logger.exception("Runtime: expiring the unanswered alert failed")
        self.acknowledger.sync_playback()


def build_runtime(
    storage: Storage,
    is_foreground: Callable[[], bool] = lambda: False,
    target: Optional[str] = None,
) -> Runtime:
    target = target or kivy_platform
    tuning = load_tuning(storage)
    player = KivyAlertPlayer(tuning.alarm_sound)

    if target == "android":
        from .android import (
            ActivityLaunchSurface,
            AndroidPermissions,
            AndroidWakeBackend,
            AndroidWakeLock,
            FullScreenNotificationSurface,
            OverlaySurface,
        )

        overlay = OverlaySurface()
        runtime = Runtime(
            storage,
            AndroidWakeBackend(REMINDER_TIMELINE),
            AndroidWakeBackend(DAILY_RESET_TIMELINE),
            AndroidPermissions(),
            AndroidWakeLock(),
            player,
            [
                ActivityLaunchSurface(tuning.launch_attempts, tuning.launch_retry_ms / 1000.0),
                FullScreenNotificationSurface(),
                overlay,
            ],
            tuning=tuning,
        )
        overlay.on_acknowledge = lambda: runtime.acknowledger.acknowledge("overlay")
        return runtime

    from .desktop import DesktopPermissions, NullWakeLock, PlyerNotificationSurface, PresenterSurface

    return Runtime(
        storage,
        StorageWakeBackend(storage, REMINDER_TIMELINE),
        StorageWakeBackend(storage, DAILY_RESET_TIMELINE),
        DesktopPermissions(is_foreground),
        NullWakeLock(),
        player,
        [PresenterSurface(), PlyerNotificationSurface()],
        tuning=tuning,
    )
