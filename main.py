from __future__ import annotations

from pathlib import Path

from kivy.clock import Clock
from kivy.core.window import Window
from kivy.lang import Builder
from kivy.logger import Logger
from kivy.utils import platform

from kivymd.app import MDApp
from kivymd.uix.button import MDFillRoundFlatButton, MDFlatButton
from kivymd.uix.dialog import MDDialog
try:
    from kivymd.uix.snackbar import Snackbar
except Exception:  # pragma: no cover
    Snackbar = None

from breakbell.config import interval_unit_seconds
from breakbell.delivery import Alert
from breakbell.desktop import PresenterSurface
from breakbell.engine import format_countdown
from breakbell.errors import PermissionDenied
from breakbell.runtime import Runtime, build_runtime
from breakbell.storage import AlertChannel, Storage

PERMISSION_HINTS = {
    "exact_alarm": "Allow 'Alarms & reminders' so reminders fire on time",
    "notifications": "Allow notifications so reminders can reach you",
    "full_screen_intent": "Allow full screen alerts to show reminders on the lock screen",
    "overlay": "Allow 'Display over other apps' as a fallback alert",
    "battery_exempt": "Turn off battery optimization so the system does not drop reminders",
}


class BreakbellApp(MDApp):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.storage: Storage | None = None
        self.runtime: Runtime | None = None
        self._foreground = False
        self._alert_dialog: MDDialog | None = None
        self._dialogs: list[MDDialog] = []

    def build(self):
        Window.minimum_width, Window.minimum_height = 390, 780
        self.theme_cls.theme_style = "Dark"
        self.theme_cls.primary_palette = "Teal"
        root = Builder.load_file(str(Path(__file__).parent / "breakbell" / "ui.kv"))
        if platform == "android":
            try:
                from android.storage import app_storage_path  # type: ignore

                data_dir = Path(app_storage_path())
            except Exception:
                data_dir = Path(self.user_data_dir)
        else:
            data_dir = Path(self.user_data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        self.storage = Storage(db_path=data_dir / "breakbell.sqlite3")
        self.runtime = build_runtime(self.storage, is_foreground=lambda: self._foreground)
        for surface in self.runtime.surfaces:
            if isinstance(surface, PresenterSurface):
                surface.attach(self.present_alert, self.close_alert)
        if platform == "android":
            self._maybe_start_android_service()
        self.runtime.on_process_start()
        Clock.schedule_once(lambda *_: self.load_settings_into_ui(), 0)
        Clock.schedule_interval(lambda *_: self.refresh_status(), 1)
        if self.runtime.pumps_wakeups:
            Clock.schedule_interval(lambda *_: self._tick_runtime(), self.runtime.tuning.tick_seconds)
        return root

    def on_start(self):
        self._foreground = True
        self._show_pending_alert()

    def on_resume(self):
        self._foreground = True
        self._rt().recovery.on_resume()
        self._show_pending_alert()

    def on_pause(self):
        self._foreground = False
        return True

    def on_stop(self):
        self._foreground = False

    def switch_tab(self, name: str):
        try:
            self.root.ids.sm.current = name
        except Exception:
            return
        if name == "settings":
            self.load_settings_into_ui()

    def _maybe_start_android_service(self):
        try:
            from jnius import autoclass  # type: ignore

            activity = autoclass("org.kivy.android.PythonActivity").mActivity
            service = autoclass(f"{activity.getPackageName()}.ServiceReminder")
            service.start(activity, "")
        except Exception:
            Logger.exception("App: could not start the reminder service")

    def _tick_runtime(self):
        if self.runtime:
            self.runtime.tick()

    # ---- status ----
    def refresh_status(self):
        if self.runtime is None or self.root is None:
            return
        ctl = self._rt().controller
        state = ctl.get_state()
        ids = self.root.ids
        pending = ctl.has_pending_alert()
        if self._alert_dialog is not None and not pending:
            # Answered from a notification or the other process.
            self.close_alert()
        elif self._alert_dialog is None and pending:
            # Rung by the service while the UI was already in front.
            self._show_pending_alert()
        remaining = ctl.get_time_remaining()
        next_at = ctl.get_next_fire_wall_clock()
        if not state.active:
            ids.countdown.text = "Paused"
        elif remaining is not None:
            ids.countdown.text = format_countdown(int(remaining.total_seconds() * 1000))
        else:
            ids.countdown.text = "Now"
        ids.next_fire.text = f"Next reminder at {next_at:%H:%M}" if next_at else ""
        ids.toggle_button.text = "Pause" if state.active else "Start"
        missing = [PERMISSION_HINTS[k] for k, ok in ctl.permission_report().items() if not ok]
        ids.permission_hint.text = "\n".join(missing)

    def toggle_active(self):
        ctl = self._rt().controller
        want = not ctl.get_state().active
        try:
            ctl.set_active(want)
        except PermissionDenied:
            self._info_dialog("Permission needed", PERMISSION_HINTS["exact_alarm"])
            return
        except Exception as exc:
            self.toast(f"Could not start: {exc}")
            return
        self.refresh_status()
        self.toast("Reminder started" if want else "Reminder paused")

    def test_alarm(self):
        ctl = self._rt().controller
        seconds = self._rt().tuning.test_alarm_seconds
        try:
            ctl.schedule_test_alarm(seconds)
        except PermissionDenied:
            self._info_dialog("Permission needed", PERMISSION_HINTS["exact_alarm"])
            return
        except ValueError as exc:
            self.toast(str(exc))
            return
        self.toast(f"Test alarm in {seconds}s - close the app to check it still fires")

    def show_diagnostics(self):
        self._info_dialog("Alarm diagnostics", self._rt().controller.diagnostic_report())

    # ---- alert ----
    def present_alert(self, alert: Alert) -> bool:
        if self._alert_dialog is not None:
            return True
        dialog = MDDialog(
            title=alert.title,
            text="Take a break.",
            auto_dismiss=False,
            buttons=[
                MDFillRoundFlatButton(text="I heard it", on_release=lambda *_: self.acknowledge_alert()),
            ],
        )
        self._alert_dialog = dialog
        dialog.open()
        return True

    def close_alert(self):
        if self._alert_dialog is not None:
            self._alert_dialog.dismiss()
            self._alert_dialog = None

    def acknowledge_alert(self):
        try:
            self._rt().controller.acknowledge("dialog")
        except PermissionDenied:
            self._info_dialog("Permission needed", PERMISSION_HINTS["exact_alarm"])
        finally:
            self.close_alert()
            self.refresh_status()

    def _show_pending_alert(self):
        # Reached from a notification tap, an activity launch by the service or the status poll.
        if self.runtime is None:
            return
        alert = self.runtime.controller.pending_alert()
        if alert is not None:
            self.present_alert(alert)

    # ---- settings ----
    def load_settings_into_ui(self):
        r = self.root.ids
        state = self._s().get_state()
        unit = interval_unit_seconds(self._rt().tuning)
        r.interval.hint_text = f"Interval ({self._rt().tuning.interval_unit})"
        r.interval.text = str(state.interval_seconds // unit)
        r.quiet_enabled.active = state.quiet_hours_enabled
        r.quiet_start.text = str(state.quiet_hours_start)
        r.quiet_end.text = str(state.quiet_hours_end)
        r.ch_sound.active = state.alert_channel is AlertChannel.SOUND
        r.ch_vibration.active = state.alert_channel is AlertChannel.VIBRATION
        r.ch_both.active = state.alert_channel is AlertChannel.BOTH
        r.custom_sound.text = state.custom_sound_ref or ""

    def save_settings(self):
        r = self.root.ids
        ctl = self._rt().controller
        unit = interval_unit_seconds(self._rt().tuning)
        try:
            ctl.set_interval(int((r.interval.text or "0").strip() or "0") * unit)
            ctl.set_quiet_hours(
                r.quiet_enabled.active,
                int((r.quiet_start.text or "22").strip() or "22"),
                int((r.quiet_end.text or "7").strip() or "7"),
            )
        except ValueError as exc:
            self.toast(f"Not saved: {exc}")
            return
        if r.ch_sound.active:
            ctl.set_alert_channel(AlertChannel.SOUND)
        elif r.ch_vibration.active:
            ctl.set_alert_channel(AlertChannel.VIBRATION)
        else:
            ctl.set_alert_channel(AlertChannel.BOTH)
        ctl.set_custom_sound(r.custom_sound.text)
        self.toast("Saved - applies from the next reminder")

    def _s(self) -> Storage:
        if self.storage is None:
            raise RuntimeError("Storage not initialized yet")
        return self.storage

    def _rt(self) -> Runtime:
        if self.runtime is None:
            raise RuntimeError("Runtime not initialized yet")
        return self.runtime

    # ---- misc ----
    def _info_dialog(self, title: str, text: str):
        dialog = MDDialog(
            title=title,
            text=text,
            buttons=[MDFlatButton(text="OK", on_release=lambda *_: dialog.dismiss())],
        )
        self._dialogs.append(dialog)
        dialog.open()

    def toast(self, text: str):
        if Snackbar is None:
            print(text)
            return
        try:
            Snackbar(text=text).open()
        except Exception:
            print(text)


if __name__ == "__main__":
    BreakbellApp().run()
