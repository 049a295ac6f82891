"""Deadline wrapper for external collaborator calls."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Optional, TypeVar

from errors import GuardTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEADLINE_S = 10.0


class TimeoutGuard:
    """Races a blocking call against a deadline.

    Every call gets its own daemon worker, so the deadline starts when the
    call starts and a hung call never delays the next one. A call that
    outlives its deadline is reported as ``GuardTimeout``; its worker is
    abandoned and whatever it eventually returns or raises is discarded.
    """

    def __init__(self, default_deadline_s: float = DEFAULT_DEADLINE_S) -> None:
        self.default_deadline_s = default_deadline_s
        self._lock = threading.Lock()
        self._abandoned = 0

    @property
    def abandoned(self) -> int:
        """Workers still running past their deadline."""
        return self._abandoned

    def run(
        self,
        fn: Callable[..., T],
        *args: object,
        deadline_s: Optional[float] = None,
        label: str = "call",
    ) -> T:
        deadline = self.default_deadline_s if deadline_s is None else deadline_s
        started = time.monotonic()
        future: Future[T] = Future()

        def _work() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        threading.Thread(target=_work, name=f"guard-{label}", daemon=True).start()
        try:
            result = future.result(timeout=deadline)
        except FutureTimeout:
            if future.done():
                # the operation raised TimeoutError itself
                raise
            if not future.cancel():
                with self._lock:
                    self._abandoned += 1
                future.add_done_callback(self._discard)
            logger.warning("%s timed out", label, extra={"deadline_s": deadline})
            raise GuardTimeout(f"{label} exceeded {deadline:.1f}s deadline") from None
        logger.debug(
            "%s finished",
            label,
            extra={"elapsed_ms": int((time.monotonic() - started) * 1000)},
        )
        return result

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._abandoned -= 1
        if future.exception() is not None:
            logger.debug("late failure ignored", extra={"error": str(future.exception())})
