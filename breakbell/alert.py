from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from kivy.logger import Logger

from .storage import AlertChannel

try:
    from plyer import vibrator as plyer_vibrator  # type: ignore
except Exception:  # pragma: no cover
    plyer_vibrator = None

# wait, buzz, wait, buzz (seconds); repeated until stopped
VIBRATION_PATTERN = [0, 0.5, 0.2, 0.5]


class AlertPlayer(ABC):
    @abstractmethod
    def start_alert(self, channel: AlertChannel, custom_sound_ref: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def stop_alert(self) -> None:
        """Must be safe to call when nothing is playing."""

    @property
    @abstractmethod
    def is_playing(self) -> bool:
        ...


class KivyAlertPlayer(AlertPlayer):
    """Looping sound through Kivy's audio providers, vibration through plyer."""

    def __init__(self, default_sound: str) -> None:
        self.default_sound = default_sound
        self._sound = None
        self._vibrating = False

    @property
    def is_playing(self) -> bool:
        return self._sound is not None or self._vibrating

    def start_alert(self, channel: AlertChannel, custom_sound_ref: Optional[str] = None) -> None:
        self.stop_alert()
        channel = AlertChannel(channel)
        if channel.plays_sound:
            self._play_sound(custom_sound_ref)
        if channel.vibrates:
            self._vibrate()

    def stop_alert(self) -> None:
        if self._sound is not None:
            try:
                self._sound.stop()
                self._sound.unload()
            except Exception:
                Logger.exception("Alert: stopping sound failed")
            self._sound = None
        if self._vibrating:
            try:
                plyer_vibrator.cancel()
            except Exception:
                Logger.exception("Alert: cancelling vibration failed")
            self._vibrating = False

    def _play_sound(self, custom_sound_ref: Optional[str]) -> None:
        from kivy.core.audio import SoundLoader

        sound = None
        if custom_sound_ref:
            sound = SoundLoader.load(custom_sound_ref)
            if sound is None:
                Logger.warning(f"Alert: cannot load {custom_sound_ref}, using default sound")
        if sound is None:
            sound = SoundLoader.load(self.default_sound)
        if sound is None:
            Logger.error(f"Alert: no playable alarm sound ({self.default_sound})")
            return
        sound.loop = True
        sound.volume = 1.0
        sound.play()
        self._sound = sound

    def _vibrate(self) -> None:
        if plyer_vibrator is None:
            return
        try:
            plyer_vibrator.pattern(pattern=VIBRATION_PATTERN, repeat=0)
            self._vibrating = True
        except NotImplementedError:
            Logger.info("Alert: vibration not supported on this platform")
        except Exception:
            Logger.exception("Alert: vibration failed")
