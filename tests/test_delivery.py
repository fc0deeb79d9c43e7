import pytest

from breakbell.delivery import (
    Alert,
    DeliveryDispatcher,
    DeliveryResult,
    attempt_with_retries,
)
from breakbell.errors import DeliveryFailure
from breakbell.storage import AlertChannel

from conftest import FakePermissions, FakeSurface, RecordingPlayer

INTERVAL_MS = 7200 * 1000


def _alert(at=1000):
    return Alert(fired_at=at, channel=AlertChannel.SOUND, custom_sound_ref="bell.ogg")


def test_first_available_surface_wins(storage):
    player = RecordingPlayer()
    surfaces = [
        FakeSurface("activity", guard=lambda ctx: ctx.foreground),
        FakeSurface("notification", guard=lambda ctx: ctx.notifications),
        FakeSurface("overlay", guard=lambda ctx: ctx.overlay and not ctx.device_locked),
    ]
    dispatcher = DeliveryDispatcher(storage, surfaces, FakePermissions(foreground=False), player)

    assert dispatcher.dispatch(_alert()) == "notification"
    assert surfaces[0].attempts == []
    assert len(surfaces[1].attempts) == 1
    assert surfaces[2].attempts == []
    assert player.started == [(AlertChannel.SOUND, "bell.ogg")]
    assert storage.get_state().pending_alert_at == 1000


def test_chain_falls_through_failures_in_order(storage):
    player = RecordingPlayer()
    surfaces = [
        FakeSurface("activity", result=DeliveryResult.FAILED),
        FakeSurface("notification", raises=RuntimeError("no channel")),
        FakeSurface("overlay"),
    ]
    dispatcher = DeliveryDispatcher(storage, surfaces, FakePermissions(), player)
    assert dispatcher.dispatch(_alert()) == "overlay"
    assert [len(s.attempts) for s in surfaces] == [1, 1, 1]


def test_locked_device_skips_overlay(storage):
    overlay = FakeSurface("overlay", guard=lambda ctx: ctx.overlay and not ctx.device_locked)
    dispatcher = DeliveryDispatcher(
        storage, [overlay], FakePermissions(device_locked=True), RecordingPlayer()
    )
    with pytest.raises(DeliveryFailure) as info:
        dispatcher.dispatch(_alert())
    assert info.value.tried == ()
    assert overlay.attempts == []


def test_exhausted_chain_raises_and_clears_pending(storage):
    player = RecordingPlayer()
    surfaces = [FakeSurface("a", result=DeliveryResult.FAILED), FakeSurface("b", result=DeliveryResult.FAILED)]
    dispatcher = DeliveryDispatcher(storage, surfaces, FakePermissions(), player)
    with pytest.raises(DeliveryFailure) as info:
        dispatcher.dispatch(_alert())
    assert info.value.tried == ("a", "b")
    assert storage.get_state().pending_alert_at == 0
    assert player.started == []


def test_alert_answered_during_presentation_does_not_start_playback(storage):
    player = RecordingPlayer()
    surface = FakeSurface("activity")

    def attempt(alert):
        # The user tapped the alert before attempt() returned.
        storage.claim_pending_alert()
        return DeliveryResult.DELIVERED

    surface.attempt = attempt
    DeliveryDispatcher(storage, [surface], FakePermissions(), player).dispatch(_alert())
    assert player.started == []


def test_retry_stops_at_first_success():
    calls, sleeps = [], []
    results = iter([False, True, True])

    def fn():
        calls.append(1)
        return next(results)

    assert attempt_with_retries(fn, attempts=3, delay_s=0.2, sleep=sleeps.append) is True
    assert len(calls) == 2
    assert sleeps == [0.2]


def test_retry_gives_up_after_attempts():
    calls, sleeps = [], []

    def fn():
        calls.append(1)
        raise RuntimeError("activity not ready")

    assert attempt_with_retries(fn, attempts=3, delay_s=0.5, sleep=sleeps.append) is False
    assert len(calls) == 3
    assert sleeps == [0.5, 0.5]


def test_second_acknowledgment_is_ignored(runtime, clock, player):
    runtime.controller.set_active(True)
    clock.advance(INTERVAL_MS)
    runtime.tick()

    clock.advance(1000)
    assert runtime.acknowledger.acknowledge("notification") is True
    first = runtime.storage.get_state().next_fire_at

    clock.advance(5000)
    assert runtime.acknowledger.acknowledge("overlay") is False
    assert runtime.storage.get_state().next_fire_at == first
    assert player.stops == 1


def test_acknowledge_while_paused_does_not_reschedule(runtime, clock):
    runtime.storage.set_pending_alert_at(clock.now)
    assert runtime.acknowledger.acknowledge() is True
    assert runtime.storage.get_state().next_fire_at == 0


def test_unanswered_alert_expires(runtime, clock, player, tuning):
    runtime.controller.set_active(True)
    clock.advance(INTERVAL_MS)
    runtime.tick()
    assert player.is_playing

    clock.advance(tuning.alert_stale_seconds * 1000 - 1)
    runtime.tick()
    assert player.is_playing

    clock.advance(1)
    runtime.tick()
    assert not player.is_playing
    assert runtime.storage.get_state().pending_alert_at == 0
    assert runtime.storage.get_state().next_fire_at == clock.now + INTERVAL_MS


def test_playback_stops_when_acknowledged_elsewhere(runtime, clock, player):
    runtime.controller.set_active(True)
    clock.advance(INTERVAL_MS)
    runtime.tick()
    assert player.is_playing

    # The other process claimed the alert.
    runtime.storage.claim_pending_alert()
    runtime.tick()
    assert not player.is_playing
