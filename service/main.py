from __future__ import annotations

import os
import sys
import time
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from kivy.logger import Logger
from kivy.utils import platform

from breakbell.runtime import build_runtime
from breakbell.storage import Storage


def _android_db_path_fallback() -> Path:
    try:
        from android.storage import app_storage_path  # type: ignore

        return Path(app_storage_path()) / "breakbell.sqlite3"
    except Exception:
        return Path.cwd() / "breakbell.sqlite3"


def main() -> None:
    data_dir = os.environ.get("BREAKBELL_DATA_DIR", "").strip()
    if data_dir:
        Path(data_dir).expanduser().mkdir(parents=True, exist_ok=True)
        db_path = Path(data_dir).expanduser() / "breakbell.sqlite3"
    else:
        db_path = _android_db_path_fallback()
    storage = Storage(db_path=db_path)
    runtime = build_runtime(storage)

    # On Android the alarm that started us passes its action as the service argument.
    action = os.environ.get("PYTHON_SERVICE_ARGUMENT", "").strip()
    if action:
        runtime.handle_action(action)
    else:
        runtime.on_process_start()

    if platform == "android" and not runtime.player.is_playing:
        Logger.info("Service: nothing left to do, exiting")
        return

    # Desktop: poll the wakeups table. Android: keep the alert ringing until it is acknowledged.
    while True:
        runtime.tick()
        if platform == "android" and not runtime.player.is_playing:
            break
        time.sleep(1 if runtime.player.is_playing else runtime.tuning.tick_seconds)


if __name__ == "__main__":
    main()
