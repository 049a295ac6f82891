"""Thread-backed timers and background work."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class ThreadTimerHandle:
    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._done = threading.Event()

    @property
    def active(self) -> bool:
        return not (self._cancelled.is_set() or self._done.is_set())

    def cancel(self) -> None:
        self._cancelled.set()

    def _finish(self) -> None:
        self._done.set()


class ThreadScheduler:
    """Scheduler backed by ``threading`` primitives and the monotonic clock."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ThreadTimerHandle:
        handle = ThreadTimerHandle()

        def _fire() -> None:
            if not handle.active:
                return
            handle._finish()
            self._run_safely(callback)

        timer = threading.Timer(max(0.0, delay_s), _fire)
        timer.daemon = True
        timer.start()
        return handle

    def call_repeating(self, interval_s: float, callback: Callable[[], None]) -> ThreadTimerHandle:
        handle = ThreadTimerHandle()

        def _loop() -> None:
            while not handle._cancelled.wait(timeout=interval_s):
                self._run_safely(callback)
            handle._finish()

        threading.Thread(target=_loop, daemon=True).start()
        return handle

    def submit(self, fn: Callable[[], None]) -> None:
        threading.Thread(target=self._run_safely, args=(fn,), daemon=True).start()

    @staticmethod
    def _run_safely(fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            logger.exception("scheduled callback failed")
