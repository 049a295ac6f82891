from __future__ import annotations

from silence import SilenceDetector

FRAME_S = 1.0 / 60.0


def _detector(scheduler, fired: list[int], threshold: float = 0.1, sustained_s: float = 1.0):  # noqa: ANN001
    return SilenceDetector(
        scheduler,
        on_silence=lambda: fired.append(1),
        threshold=threshold,
        sustained_s=sustained_s,
    )


def _play(scheduler, detector, levels: list[float]) -> None:  # noqa: ANN001
    for level in levels:
        detector.feed(level)
        scheduler.advance(FRAME_S)


def test_sustained_silence_fires_once(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired)

    _play(scheduler, detector, [0.5, 0.5] + [0.05] * 120)

    assert fired == [1]
    assert detector.is_silent is True


def test_quiet_samples_do_not_restart_timer(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired)

    detector.feed(0.05)
    first = scheduler.pending()
    assert len(first) == 1
    for _ in range(30):
        scheduler.advance(FRAME_S)
        detector.feed(0.02)

    assert scheduler.pending() == first
    # fires one second after the first quiet sample, not the last
    scheduler.advance(0.5 + 0.001)
    assert fired == [1]


def test_loud_sample_cancels_pending_timer(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired)

    _play(scheduler, detector, [0.05] * 30)
    assert detector.pending is True
    detector.feed(0.4)

    assert detector.pending is False
    assert detector.is_silent is False
    scheduler.advance(2.0)
    assert fired == []


def test_short_pauses_never_fire(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired)

    pattern = ([0.05] * 40 + [0.6] * 5) * 6
    _play(scheduler, detector, pattern)

    assert fired == []


def test_one_event_per_episode(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired)

    _play(scheduler, detector, [0.05] * 200)
    assert fired == [1]

    _play(scheduler, detector, [0.7] * 3 + [0.05] * 80)
    assert fired == [1, 1]


def test_threshold_is_exclusive(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired, threshold=0.2, sustained_s=0.5)

    _play(scheduler, detector, [0.2] * 60)
    assert fired == []

    _play(scheduler, detector, [0.19] * 60)
    assert fired == [1]


def test_cancel_drops_pending_timer_and_ignores_samples(scheduler) -> None:  # noqa: ANN001
    fired: list[int] = []
    detector = _detector(scheduler, fired)

    detector.feed(0.0)
    detector.cancel()
    detector.feed(0.0)
    scheduler.advance(5.0)

    assert fired == []
    assert scheduler.pending() == []
