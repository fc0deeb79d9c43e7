from __future__ import annotations


class BreakbellError(Exception):
    """Base class for scheduling and delivery failures."""


class PermissionDenied(BreakbellError):
    """Exact wake timers need a permission the user has not granted.

    Scheduling is blocked until the permission is granted; the caller must not
    fall back to inexact timing.
    """


class RegistrationFailure(BreakbellError):
    """The platform refused or failed to register a wake timer."""


class DeliveryFailure(BreakbellError):
    """No alert surface could present the reminder."""

    def __init__(self, message: str, tried: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.tried = tried
