from __future__ import annotations

from typing import Callable, Optional

import pytest


class FakeTimer:
    def __init__(
        self,
        due: float,
        callback: Callable[[], None],
        seq: int,
        interval: Optional[float] = None,
    ) -> None:
        self.due = due
        self.callback = callback
        self.seq = seq
        self.interval = interval
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers fire only inside ``advance``; ``submit`` runs inline."""

    def __init__(self) -> None:
        self.time = 0.0
        self.timers: list[FakeTimer] = []
        self.submitted = 0
        self._seq = 0

    def now(self) -> float:
        return self.time

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> FakeTimer:
        return self._add(FakeTimer(self.time + delay_s, callback, self._next_seq()))

    def call_repeating(self, interval_s: float, callback: Callable[[], None]) -> FakeTimer:
        return self._add(FakeTimer(self.time + interval_s, callback, self._next_seq(), interval_s))

    def submit(self, fn: Callable[[], None]) -> None:
        self.submitted += 1
        fn()

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [t for t in self.timers if t.active and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.time = max(self.time, timer.due)
            if timer.interval is not None:
                timer.due += timer.interval
            else:
                timer.fired = True
            timer.callback()
        self.time = target

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.active]

    def _add(self, timer: FakeTimer) -> FakeTimer:
        self.timers.append(timer)
        return timer

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()
