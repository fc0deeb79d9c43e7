from __future__ import annotations

import os
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional


SCHEMA_VERSION = 1

DEFAULT_INTERVAL_SECONDS = 2 * 60 * 60
DEFAULT_QUIET_HOURS_START = 22
DEFAULT_QUIET_HOURS_END = 7


def _default_db_path() -> Path:
    base = Path(os.environ.get("BREAKBELL_DATA_DIR", "")).expanduser()
    if str(base).strip():
        base.mkdir(parents=True, exist_ok=True)
        return base / "breakbell.sqlite3"
    return Path.cwd() / "breakbell.sqlite3"


class AlertChannel(str, Enum):
    SOUND = "SOUND"
    VIBRATION = "VIBRATION"
    BOTH = "BOTH"

    @property
    def plays_sound(self) -> bool:
        return self in (AlertChannel.SOUND, AlertChannel.BOTH)

    @property
    def vibrates(self) -> bool:
        return self in (AlertChannel.VIBRATION, AlertChannel.BOTH)


@dataclass(frozen=True)
class ReminderState:
    active: bool = False
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    quiet_hours_enabled: bool = False
    quiet_hours_start: int = DEFAULT_QUIET_HOURS_START
    quiet_hours_end: int = DEFAULT_QUIET_HOURS_END
    alert_channel: AlertChannel = AlertChannel.BOTH
    custom_sound_ref: Optional[str] = None
    next_fire_at: int = 0
    last_daily_reset_date: str = ""
    pending_alert_at: int = 0


@dataclass(frozen=True)
class WakeupRow:
    key: str
    action: str
    fire_at: int


class Storage:
    """
    Durable key/value store for the reminder state.
    Every write commits immediately; nothing is cached between calls, so a
    freshly started service process sees exactly what the UI process wrote.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or _default_db_path()
        self._lock = threading.RLock()
        self._ensure()

    @contextmanager
    def _conn(self) -> Iterable[sqlite3.Connection]:
        with self._lock:
            conn = sqlite3.connect(self.db_path, timeout=10)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            finally:
                conn.close()

    def _ensure(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            version = conn.execute(
                "SELECT value FROM meta WHERE key='schema_version'"
            ).fetchone()
            if version is None:
                conn.execute(
                    "INSERT INTO meta(key, value) VALUES('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
                self._create_schema(conn)
            else:
                # Future migrations would go here.
                pass

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS wakeups (
                key TEXT PRIMARY KEY,
                action TEXT NOT NULL,
                fire_at INTEGER NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_wakeups_fire_at ON wakeups(fire_at);
            """
        )

    # ---- settings ----
    def get_setting(self, key: str, default: str = "") -> str:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE key=?", (key,)
            ).fetchone()
            return str(row["value"]) if row else default

    def set_setting(self, key: str, value: str) -> None:
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO settings(key, value) VALUES(?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )

    def has_setting(self, key: str) -> bool:
        with self._conn() as conn:
            row = conn.execute("SELECT 1 FROM settings WHERE key=?", (key,)).fetchone()
            return row is not None

    def get_int(self, key: str, default: int) -> int:
        raw = self.get_setting(key, "")
        try:
            return int(raw) if raw.strip() else default
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        raw = self.get_setting(key, "")
        if not raw:
            return default
        return raw == "1"

    def set_int(self, key: str, value: int) -> None:
        self.set_setting(key, str(int(value)))

    def set_bool(self, key: str, value: bool) -> None:
        self.set_setting(key, "1" if value else "0")

    # ---- reminder state ----
    def get_state(self) -> ReminderState:
        with self._conn() as conn:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()
        raw = {str(r["key"]): str(r["value"]) for r in rows}

        def _int(key: str, default: int) -> int:
            try:
                return int(raw[key])
            except (KeyError, ValueError):
                return default

        try:
            channel = AlertChannel(raw.get("alert_channel", AlertChannel.BOTH.value))
        except ValueError:
            channel = AlertChannel.BOTH

        return ReminderState(
            active=raw.get("active", "0") == "1",
            interval_seconds=_int("interval_seconds", DEFAULT_INTERVAL_SECONDS),
            quiet_hours_enabled=raw.get("quiet_hours_enabled", "0") == "1",
            quiet_hours_start=_int("quiet_hours_start", DEFAULT_QUIET_HOURS_START),
            quiet_hours_end=_int("quiet_hours_end", DEFAULT_QUIET_HOURS_END),
            alert_channel=channel,
            custom_sound_ref=raw.get("custom_sound_ref") or None,
            next_fire_at=_int("next_fire_at", 0),
            last_daily_reset_date=raw.get("last_daily_reset_date", ""),
            pending_alert_at=_int("pending_alert_at", 0),
        )

    def set_active(self, active: bool) -> None:
        self.set_bool("active", active)

    def set_interval_seconds(self, seconds: int) -> None:
        self.set_int("interval_seconds", seconds)

    def set_quiet_hours(self, enabled: bool, start: int, end: int) -> None:
        self.set_bool("quiet_hours_enabled", enabled)
        self.set_int("quiet_hours_start", start)
        self.set_int("quiet_hours_end", end)

    def set_alert_channel(self, channel: AlertChannel) -> None:
        self.set_setting("alert_channel", AlertChannel(channel).value)

    def set_custom_sound_ref(self, ref: Optional[str]) -> None:
        self.set_setting("custom_sound_ref", ref or "")

    def set_next_fire_at(self, fire_at: int) -> None:
        self.set_int("next_fire_at", fire_at)

    def set_last_daily_reset_date(self, day: str) -> None:
        self.set_setting("last_daily_reset_date", day)

    def set_pending_alert_at(self, at: int) -> None:
        self.set_int("pending_alert_at", at)

    def claim_pending_alert(self) -> bool:
        """
        Clear the pending-alert marker. Returns True only for the caller that
        actually cleared it; concurrent acknowledgments from other surfaces or
        processes get False.
        """
        with self._conn() as conn:
            cur = conn.execute(
                "UPDATE settings SET value='0' "
                "WHERE key='pending_alert_at' AND value NOT IN ('', '0')"
            )
            return cur.rowcount == 1

    # ---- wakeups (desktop wake timer table) ----
    def put_wakeup(self, key: str, action: str, fire_at: int) -> None:
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO wakeups(key, action, fire_at) VALUES(?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET action=excluded.action, fire_at=excluded.fire_at",
                (key, action, int(fire_at)),
            )

    def get_wakeup(self, key: str) -> Optional[WakeupRow]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT key, action, fire_at FROM wakeups WHERE key=?", (key,)
            ).fetchone()
            return WakeupRow(**dict(row)) if row else None

    def delete_wakeup(self, key: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM wakeups WHERE key=?", (key,))

    def pop_due_wakeups(self, now: int) -> list[WakeupRow]:
        # The UI and the service may both pump; take the write lock before reading.
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute(
                """
                SELECT key, action, fire_at FROM wakeups
                WHERE fire_at<=?
                ORDER BY fire_at ASC
                """,
                (int(now),),
            ).fetchall()
            due = []
            for r in rows:
                w = WakeupRow(**dict(r))
                cur = conn.execute(
                    "DELETE FROM wakeups WHERE key=? AND fire_at=?", (w.key, w.fire_at)
                )
                if cur.rowcount == 1:
                    due.append(w)
            return due

    def list_wakeups(self) -> list[WakeupRow]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT key, action, fire_at FROM wakeups ORDER BY fire_at ASC"
            ).fetchall()
            return [WakeupRow(**dict(r)) for r in rows]
