from __future__ import annotations

from dataclasses import dataclass, fields

from .storage import Storage


@dataclass(frozen=True)
class Tuning:
    """Runtime knobs, stored in the settings table next to the reminder state."""

    missed_grace_seconds: int = 60
    wake_lock_seconds: int = 10 * 60
    daily_wake_lock_seconds: int = 60
    tick_seconds: int = 30
    launch_attempts: int = 3
    launch_retry_ms: int = 200
    alert_stale_seconds: int = 10 * 60
    test_alarm_seconds: int = 10
    # "minutes" in release builds; "seconds" lets the settings screen enter
    # tiny intervals while testing on a device.
    interval_unit: str = "minutes"
    alarm_sound: str = "assets/sounds/alarm.wav"


def load_tuning(storage: Storage) -> Tuning:
    values = {}
    for f in fields(Tuning):
        if f.type in ("int", int):
            values[f.name] = storage.get_int(f.name, f.default)
        else:
            values[f.name] = storage.get_setting(f.name, "").strip() or f.default
    tuning = Tuning(**values)
    if tuning.interval_unit not in ("minutes", "seconds"):
        tuning = Tuning(**{**values, "interval_unit": "minutes"})
    return tuning


def interval_unit_seconds(tuning: Tuning) -> int:
    return 1 if tuning.interval_unit == "seconds" else 60
