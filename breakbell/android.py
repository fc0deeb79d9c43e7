"""
Android bindings (pyjnius): AlarmManager wake timers, permission probes, the
CPU wake lock, and the three alert surfaces.

Only imported when running on Android. Wake timers target the app's
background service (declared in buildozer as ``Reminder:service/main.py``);
the action travels as the service argument, so a fire can cold-start the
service process without the UI.
"""

from __future__ import annotations

from typing import Callable, Optional

from jnius import JavaException, PythonJavaClass, autoclass, cast, java_method  # type: ignore
from kivy.logger import Logger

from .delivery import Alert, AlertSurface, DeliveryContext, DeliveryResult, attempt_with_retries
from .errors import PermissionDenied, RegistrationFailure
from .platform import PermissionProbe, WakeLock
from .wakeup import WakeBackend

SERVICE_NAME = "Reminder"
NOTIFICATION_ID = 1001
CHANNEL_ID = "breakbell_alarm_channel"
EXTRA_FROM_ALARM = "from_alarm"

BuildVERSION = autoclass("android.os.Build$VERSION")
Context = autoclass("android.content.Context")
Intent = autoclass("android.content.Intent")
PendingIntent = autoclass("android.app.PendingIntent")
AlarmManager = autoclass("android.app.AlarmManager")


def sdk_int() -> int:
    try:
        return int(BuildVERSION.SDK_INT)
    except Exception:
        return 0


def app_context():
    """The activity when the UI process is running, otherwise the service."""
    try:
        activity = autoclass("org.kivy.android.PythonActivity").mActivity
        if activity is not None:
            return activity.getApplicationContext()
    except Exception:
        pass
    service = autoclass("org.kivy.android.PythonService").mService
    return service.getApplicationContext()


def _immutable(flags: int) -> int:
    if sdk_int() >= 23:
        flags |= PendingIntent.FLAG_IMMUTABLE
    return flags


def _service_intent(ctx, action: str):
    service_cls = autoclass(f"{ctx.getPackageName()}.Service{SERVICE_NAME}")
    intent = service_cls.getDefaultIntent(ctx, "", "Breakbell", "Checking your reminder", action)
    intent.setAction(action)
    return intent


def _activity_intent(ctx):
    intent = Intent(ctx, autoclass("org.kivy.android.PythonActivity"))
    intent.addFlags(
        Intent.FLAG_ACTIVITY_NEW_TASK
        | Intent.FLAG_ACTIVITY_CLEAR_TOP
        | Intent.FLAG_ACTIVITY_SINGLE_TOP
        | Intent.FLAG_ACTIVITY_REORDER_TO_FRONT
    )
    intent.putExtra(EXTRA_FROM_ALARM, True)
    return intent


class AndroidWakeBackend(WakeBackend):
    """setExactAndAllowWhileIdle on a fixed request code, so re-registering replaces."""

    def _pending_intent(self, flags: int):
        ctx = app_context()
        intent = _service_intent(ctx, self.timeline.action)
        if sdk_int() >= 26:
            return PendingIntent.getForegroundService(ctx, self.timeline.request_code, intent, _immutable(flags))
        return PendingIntent.getService(ctx, self.timeline.request_code, intent, _immutable(flags))

    def _alarm_manager(self):
        return cast(AlarmManager, app_context().getSystemService(Context.ALARM_SERVICE))

    def register(self, fire_at: int) -> None:
        am = self._alarm_manager()
        if sdk_int() >= 31 and not am.canScheduleExactAlarms():
            raise PermissionDenied("SCHEDULE_EXACT_ALARM not granted")
        try:
            pi = self._pending_intent(PendingIntent.FLAG_UPDATE_CURRENT)
            am.setExactAndAllowWhileIdle(AlarmManager.RTC_WAKEUP, int(fire_at), pi)
        except JavaException as exc:
            if "SecurityException" in str(exc):
                raise PermissionDenied(str(exc)) from exc
            raise RegistrationFailure(str(exc)) from exc
        Logger.debug(f"Android: {self.timeline.key} alarm set for {fire_at}")
        if not self.is_registered():
            Logger.warning(f"Android: {self.timeline.key} alarm not visible after registering, it may still fire")

    def cancel(self) -> None:
        pi = self._pending_intent(PendingIntent.FLAG_NO_CREATE)
        if pi is None:
            return
        self._alarm_manager().cancel(pi)
        pi.cancel()
        Logger.debug(f"Android: {self.timeline.key} alarm cancelled")

    def is_registered(self) -> bool:
        # FLAG_NO_CREATE looks the PendingIntent up without creating it; the
        # closest thing to "is an alarm set" the platform offers.
        try:
            return self._pending_intent(PendingIntent.FLAG_NO_CREATE) is not None
        except JavaException:
            Logger.exception("Android: alarm lookup failed")
            return False


class AndroidPermissions(PermissionProbe):
    def __init__(self) -> None:
        self._ctx = app_context()

    def _service(self, name: str, cls: str):
        return cast(cls, self._ctx.getSystemService(name))

    def exact_alarm(self) -> bool:
        if sdk_int() < 31:
            return True
        try:
            return bool(self._service(Context.ALARM_SERVICE, "android.app.AlarmManager").canScheduleExactAlarms())
        except JavaException:
            Logger.exception("Android: canScheduleExactAlarms check failed")
            return False

    def notifications(self) -> bool:
        if sdk_int() < 33:
            return True
        PackageManager = autoclass("android.content.pm.PackageManager")
        granted = self._ctx.checkSelfPermission("android.permission.POST_NOTIFICATIONS")
        return granted == PackageManager.PERMISSION_GRANTED

    def full_screen_intent(self) -> bool:
        if sdk_int() < 34:
            return True
        try:
            nm = self._service(Context.NOTIFICATION_SERVICE, "android.app.NotificationManager")
            return bool(nm.canUseFullScreenIntent())
        except JavaException:
            return True

    def overlay(self) -> bool:
        if sdk_int() < 23:
            return True
        return bool(autoclass("android.provider.Settings").canDrawOverlays(self._ctx))

    def battery_exempt(self) -> bool:
        if sdk_int() < 23:
            return True
        pm = self._service(Context.POWER_SERVICE, "android.os.PowerManager")
        return bool(pm.isIgnoringBatteryOptimizations(self._ctx.getPackageName()))

    def device_locked(self) -> bool:
        km = self._service(Context.KEYGUARD_SERVICE, "android.app.KeyguardManager")
        return bool(km.isDeviceLocked())

    def foreground(self) -> bool:
        am = self._service(Context.ACTIVITY_SERVICE, "android.app.ActivityManager")
        RunningAppProcessInfo = autoclass("android.app.ActivityManager$RunningAppProcessInfo")
        package = self._ctx.getPackageName()
        processes = am.getRunningAppProcesses()
        if processes is None:
            return False
        for i in range(processes.size()):
            proc = processes.get(i)
            if proc.processName == package and proc.importance == RunningAppProcessInfo.IMPORTANCE_FOREGROUND:
                return True
        return False


class AndroidWakeLock(WakeLock):
    def __init__(self, tag: str = "Breakbell::AlarmWakeLock") -> None:
        self.tag = tag
        self._lock = None

    def acquire(self, timeout_s: int) -> None:
        PowerManager = autoclass("android.os.PowerManager")
        pm = cast("android.os.PowerManager", app_context().getSystemService(Context.POWER_SERVICE))
        self._lock = pm.newWakeLock(PowerManager.PARTIAL_WAKE_LOCK, self.tag)
        self._lock.acquire(int(timeout_s) * 1000)

    def release(self) -> None:
        if self._lock is not None and self._lock.isHeld():
            self._lock.release()
        self._lock = None


class _Runnable(PythonJavaClass):
    __javainterfaces__ = ["java/lang/Runnable"]
    __javacontext__ = "app"

    def __init__(self, fn: Callable[[], None]) -> None:
        super().__init__()
        self.fn = fn

    @java_method("()V")
    def run(self) -> None:
        try:
            self.fn()
        except Exception:
            Logger.exception("Android: UI thread task failed")


class _ClickListener(PythonJavaClass):
    __javainterfaces__ = ["android/view/View$OnClickListener"]
    __javacontext__ = "app"

    def __init__(self, fn: Callable[[], None]) -> None:
        super().__init__()
        self.fn = fn

    @java_method("(Landroid/view/View;)V")
    def onClick(self, view) -> None:
        self.fn()


def _post_to_main(fn: Callable[[], None]) -> Optional[_Runnable]:
    Handler = autoclass("android.os.Handler")
    Looper = autoclass("android.os.Looper")
    runnable = _Runnable(fn)
    if Handler(Looper.getMainLooper()).post(runnable):
        return runnable
    return None


class ActivityLaunchSurface(AlertSurface):
    """Bring the app's activity forward; it shows the alert dialog on arrival."""

    name = "activity"

    def __init__(self, attempts: int = 3, retry_delay_s: float = 0.2, sleep=None) -> None:
        self.attempts = attempts
        self.retry_delay_s = retry_delay_s
        self.sleep = sleep

    def can_attempt(self, ctx: DeliveryContext) -> bool:
        return ctx.foreground

    def _launch(self) -> bool:
        ctx = app_context()
        ctx.startActivity(_activity_intent(ctx))
        return True

    def attempt(self, alert: Alert) -> DeliveryResult:
        kwargs = {"attempts": self.attempts, "delay_s": self.retry_delay_s}
        if self.sleep is not None:
            kwargs["sleep"] = self.sleep
        if attempt_with_retries(self._launch, **kwargs):
            return DeliveryResult.DELIVERED
        return DeliveryResult.FAILED


class FullScreenNotificationSurface(AlertSurface):
    """
    Alarm-category notification. With the full-screen intent allowed it opens
    the activity by itself on a locked screen; otherwise it is a heads-up with
    tap-to-open.
    """

    name = "notification"

    def __init__(self) -> None:
        self._full_screen = True

    def can_attempt(self, ctx: DeliveryContext) -> bool:
        self._full_screen = ctx.full_screen_intent
        return ctx.notifications

    def _manager(self, ctx):
        return cast("android.app.NotificationManager", ctx.getSystemService(Context.NOTIFICATION_SERVICE))

    def _ensure_channel(self, ctx) -> None:
        if sdk_int() < 26:
            return
        NotificationChannel = autoclass("android.app.NotificationChannel")
        NotificationManager = autoclass("android.app.NotificationManager")
        Notification = autoclass("android.app.Notification")
        nm = self._manager(ctx)
        existing = nm.getNotificationChannel(CHANNEL_ID)
        if existing is not None and existing.getImportance() >= NotificationManager.IMPORTANCE_HIGH:
            return
        if existing is not None:
            # Importance cannot be raised on an existing channel; recreate it.
            nm.deleteNotificationChannel(CHANNEL_ID)
        channel = NotificationChannel(CHANNEL_ID, "Break reminders", NotificationManager.IMPORTANCE_HIGH)
        channel.setDescription("Full screen break reminder alarms")
        channel.enableVibration(True)
        channel.setBypassDnd(True)
        channel.setShowBadge(False)
        channel.setLockscreenVisibility(Notification.VISIBILITY_PUBLIC)
        channel.setSound(None, None)
        nm.createNotificationChannel(channel)

    def attempt(self, alert: Alert) -> DeliveryResult:
        ctx = app_context()
        self._ensure_channel(ctx)
        Notification = autoclass("android.app.Notification")
        NotificationBuilder = autoclass("android.app.Notification$Builder")
        pi = PendingIntent.getActivity(
            ctx, NOTIFICATION_ID, _activity_intent(ctx), _immutable(PendingIntent.FLAG_UPDATE_CURRENT)
        )
        builder = NotificationBuilder(ctx, CHANNEL_ID) if sdk_int() >= 26 else NotificationBuilder(ctx)
        builder.setContentTitle(alert.title)
        builder.setContentText(alert.message)
        builder.setSmallIcon(ctx.getApplicationInfo().icon)
        builder.setCategory(Notification.CATEGORY_ALARM)
        builder.setPriority(Notification.PRIORITY_MAX)
        builder.setVisibility(Notification.VISIBILITY_PUBLIC)
        builder.setContentIntent(pi)
        builder.setAutoCancel(True)
        builder.setShowWhen(True)
        builder.setWhen(alert.fired_at)
        if self._full_screen:
            builder.setFullScreenIntent(pi, True)
        self._manager(ctx).notify(NOTIFICATION_ID, builder.build())
        return DeliveryResult.DELIVERED

    def dismiss(self) -> None:
        self._manager(app_context()).cancel(NOTIFICATION_ID)


class OverlaySurface(AlertSurface):
    """Draw-over-other-apps window for when notifications are blocked and the screen is unlocked."""

    name = "overlay"

    def __init__(self) -> None:
        self.on_acknowledge: Optional[Callable[[], None]] = None
        self._view = None
        self._keep = []

    def can_attempt(self, ctx: DeliveryContext) -> bool:
        return ctx.overlay and not ctx.device_locked

    def _window_manager(self, ctx):
        return cast("android.view.WindowManager", ctx.getSystemService(Context.WINDOW_SERVICE))

    def _show(self) -> None:
        ctx = app_context()
        LinearLayout = autoclass("android.widget.LinearLayout")
        TextView = autoclass("android.widget.TextView")
        Button = autoclass("android.widget.Button")
        Color = autoclass("android.graphics.Color")
        Gravity = autoclass("android.view.Gravity")
        PixelFormat = autoclass("android.graphics.PixelFormat")
        LayoutParams = autoclass("android.view.WindowManager$LayoutParams")

        root = LinearLayout(ctx)
        root.setOrientation(LinearLayout.VERTICAL)
        root.setGravity(Gravity.CENTER)
        root.setBackgroundColor(Color.WHITE)
        root.setPadding(48, 48, 48, 48)

        message = TextView(ctx)
        message.setText("Time to go!")
        message.setTextSize(36.0)
        message.setGravity(Gravity.CENTER)
        root.addView(message)

        listener = _ClickListener(self._acknowledged)
        button = Button(ctx)
        button.setText("I heard it")
        button.setTextSize(24.0)
        button.setOnClickListener(listener)
        root.addView(button)

        params = LayoutParams(
            LayoutParams.MATCH_PARENT,
            LayoutParams.MATCH_PARENT,
            LayoutParams.TYPE_APPLICATION_OVERLAY,
            LayoutParams.FLAG_KEEP_SCREEN_ON | LayoutParams.FLAG_TURN_SCREEN_ON | LayoutParams.FLAG_SHOW_WHEN_LOCKED,
            PixelFormat.TRANSLUCENT,
        )
        self._window_manager(ctx).addView(root, params)
        self._view = root
        self._keep.append(listener)

    def _acknowledged(self) -> None:
        if self.on_acknowledge is None:
            self.dismiss()
            return
        try:
            self.on_acknowledge()
        except Exception:
            Logger.exception("Android: overlay acknowledgment failed")
            self.dismiss()

    def attempt(self, alert: Alert) -> DeliveryResult:
        self._keep = []
        runnable = _post_to_main(self._show)
        if runnable is None:
            return DeliveryResult.FAILED
        # pyjnius proxies must outlive the Java callbacks that reference them.
        self._keep.append(runnable)
        return DeliveryResult.DELIVERED

    def _remove(self) -> None:
        if self._view is None:
            return
        self._window_manager(app_context()).removeView(self._view)
        self._view = None

    def dismiss(self) -> None:
        if self._view is not None:
            runnable = _post_to_main(self._remove)
            if runnable is not None:
                self._keep.append(runnable)
