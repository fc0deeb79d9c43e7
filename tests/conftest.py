import os
import tempfile

# Kivy parses sys.argv and opens log files on import; keep it quiet under pytest.
os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_CONSOLELOG", "1")
os.environ.setdefault("KIVY_NO_FILELOG", "1")
os.environ.setdefault("KIVY_HOME", tempfile.mkdtemp(prefix="breakbell-kivy-"))

from datetime import datetime
from typing import Optional

import pytest

from breakbell.config import Tuning
from breakbell.delivery import AlertSurface, DeliveryContext, DeliveryResult
from breakbell.alert import AlertPlayer
from breakbell.platform import PermissionProbe, WakeLock
from breakbell.runtime import Runtime
from breakbell.storage import Storage
from breakbell.wakeup import DAILY_RESET_TIMELINE, REMINDER_TIMELINE, StorageWakeBackend


def local_ms(year, month, day, hour=0, minute=0, second=0) -> int:
    """Epoch milliseconds for a wall-clock time in the host's timezone."""
    return int(round(datetime(year, month, day, hour, minute, second).timestamp() * 1000))


class FakeClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakePermissions(PermissionProbe):
    def __init__(self, **overrides) -> None:
        self.values = {
            "exact_alarm": True,
            "notifications": True,
            "full_screen_intent": True,
            "overlay": True,
            "battery_exempt": True,
            "device_locked": False,
            "foreground": False,
        }
        self.values.update(overrides)

    def exact_alarm(self):
        return self.values["exact_alarm"]

    def notifications(self):
        return self.values["notifications"]

    def full_screen_intent(self):
        return self.values["full_screen_intent"]

    def overlay(self):
        return self.values["overlay"]

    def battery_exempt(self):
        return self.values["battery_exempt"]

    def device_locked(self):
        return self.values["device_locked"]

    def foreground(self):
        return self.values["foreground"]


class RecordingPlayer(AlertPlayer):
    def __init__(self) -> None:
        self.started = []
        self.stops = 0
        self._playing = False

    @property
    def is_playing(self):
        return self._playing

    def start_alert(self, channel, custom_sound_ref=None):
        self.started.append((channel, custom_sound_ref))
        self._playing = True

    def stop_alert(self):
        self.stops += 1
        self._playing = False


class RecordingWakeLock(WakeLock):
    def __init__(self) -> None:
        self.held = []
        self.released = 0

    def acquire(self, timeout_s):
        self.held.append(timeout_s)

    def release(self):
        self.released += 1


class FakeSurface(AlertSurface):
    def __init__(self, name, result=DeliveryResult.DELIVERED, available=True, guard=None, raises=None):
        self.name = name
        self.result = result
        self.available = available
        self.guard = guard
        self.raises = raises
        self.attempts = []
        self.dismissed = 0

    def can_attempt(self, ctx: DeliveryContext) -> bool:
        if self.guard is not None:
            return self.guard(ctx)
        return self.available

    def attempt(self, alert):
        self.attempts.append(alert)
        if self.raises is not None:
            raise self.raises
        return self.result

    def dismiss(self):
        self.dismissed += 1


T0 = local_ms(2024, 6, 12, 9, 0)


@pytest.fixture
def storage(tmp_path) -> Storage:
    return Storage(db_path=tmp_path / "breakbell.sqlite3")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def permissions() -> FakePermissions:
    return FakePermissions()


@pytest.fixture
def player() -> RecordingPlayer:
    return RecordingPlayer()


@pytest.fixture
def wake_lock() -> RecordingWakeLock:
    return RecordingWakeLock()


@pytest.fixture
def surfaces():
    return [FakeSurface("activity"), FakeSurface("notification")]


@pytest.fixture
def tuning() -> Tuning:
    return Tuning()


@pytest.fixture
def make_runtime(storage, clock, permissions, player, wake_lock, tuning):
    def _make(surfaces=None, tuning_override: Optional[Tuning] = None, player_override=None) -> Runtime:
        return Runtime(
            storage,
            StorageWakeBackend(storage, REMINDER_TIMELINE),
            StorageWakeBackend(storage, DAILY_RESET_TIMELINE),
            permissions,
            wake_lock,
            player_override or player,
            surfaces if surfaces is not None else [FakeSurface("activity"), FakeSurface("notification")],
            get_now=clock,
            tuning=tuning_override or tuning,
        )

    return _make


@pytest.fixture
def runtime(make_runtime, surfaces) -> Runtime:
    return make_runtime(surfaces)
