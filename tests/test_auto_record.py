from __future__ import annotations

from auto_record import AutoRecordScheduler
from errors import APOLOGY_TEXT
from models import ControllerState

from test_recording_controller import Harness


def _auto(h: Harness, enabled: bool = True) -> AutoRecordScheduler:
    return AutoRecordScheduler(h.controller, h.scheduler, enabled=enabled)


def test_rearms_one_second_after_turn_completes(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h)

    h.controller.send_text("Hej")
    assert h.controller.state == ControllerState.IDLE
    assert auto.pending is True

    scheduler.advance(0.99)
    assert h.controller.state == ControllerState.IDLE
    scheduler.advance(0.02)
    assert h.controller.state == ControllerState.RECORDING
    assert auto.pending is False


def test_rearms_after_failed_turn(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    h.transcriber.text = ""
    auto = _auto(h)

    h.controller.start_recording()
    h.controller.stop_recording()
    assert h.controller.messages[-1].content == APOLOGY_TEXT

    assert auto.pending is True
    scheduler.advance(1.0)
    assert h.controller.state == ControllerState.RECORDING


def test_manual_start_cancels_pending_arm(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h)
    h.controller.send_text("Hej")

    assert h.controller.start_recording() is True
    assert auto.pending is False

    h.recorder.window = h.recorder.window * 0
    scheduler.advance(0.5)
    assert h.recorder.started == 1


def test_pending_start_is_dropped_when_controller_busy(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h, enabled=False)
    auto.set_enabled(True)
    assert auto.pending is True

    # busy without a state change reaching the auto-recorder
    h.controller._flags.thinking = True
    scheduler.advance(1.0)

    assert h.recorder.started == 0
    assert h.controller.state == ControllerState.IDLE


def test_disable_while_recording_stops_capture(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h)
    h.controller.start_recording()

    auto.set_enabled(False)

    assert h.recorder.stopped == 1
    assert len(h.transcriber.calls) == 1
    assert h.controller.state == ControllerState.IDLE
    assert auto.pending is False
    scheduler.advance(5.0)
    assert h.recorder.started == 1


def test_enable_arms_after_half_second(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h, enabled=False)

    assert auto.toggle() is True
    scheduler.advance(0.49)
    assert h.controller.state == ControllerState.IDLE
    scheduler.advance(0.02)
    assert h.controller.state == ControllerState.RECORDING


def test_acquisition_failure_does_not_loop(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    h.recorder.fail = True
    auto = _auto(h, enabled=False)

    auto.set_enabled(True)
    scheduler.advance(0.5)

    assert len(h.errors) == 1
    assert auto.pending is False
    scheduler.advance(10.0)
    assert len(h.errors) == 1


def test_rapid_idle_transitions_fire_at_most_one_start(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h)
    starts: list[bool] = []
    original = h.controller.start_recording
    h.controller.start_recording = lambda: starts.append(original()) or starts[-1]

    for _ in range(3):
        auto.on_state_change(ControllerState.SPEAKING, ControllerState.IDLE)
        scheduler.advance(0.3)

    assert len(scheduler.pending()) == 1
    scheduler.advance(2.0)
    assert starts == [True]


def test_shutdown_while_recording_does_not_rearm(scheduler) -> None:  # noqa: ANN001
    h = Harness(scheduler)
    auto = _auto(h)
    h.controller.start_recording()

    h.controller.shutdown()
    scheduler.advance(2.0)

    assert h.controller.state == ControllerState.IDLE
    assert h.recorder.started == 1
    assert h.recorder.stopped == 1
    assert auto.pending is False
    assert scheduler.pending() == []
