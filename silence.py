"""Amplitude-based end-of-utterance detection."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from interfaces import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
DEFAULT_SUSTAINED_S = 1.0


class SilenceDetector:
    """Raises ``on_silence`` once per silence episode.

    The timer is armed by the first sub-threshold sample after a loud
    period and is never restarted by further quiet samples. A sample at or
    above the threshold cancels the timer and ends the episode.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_silence: Callable[[], None],
        threshold: float = DEFAULT_THRESHOLD,
        sustained_s: float = DEFAULT_SUSTAINED_S,
    ) -> None:
        self._scheduler = scheduler
        self._on_silence = on_silence
        self.threshold = threshold
        self.sustained_s = sustained_s
        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._episode = 0
        self._confirmed = False
        self._closed = False
        self.is_silent = False

    @property
    def pending(self) -> bool:
        return self._timer is not None and self._timer.active

    def feed(self, level: float) -> None:
        with self._lock:
            if self._closed:
                return
            if level >= self.threshold:
                self.is_silent = False
                self._confirmed = False
                self._cancel_timer_locked()
                return
            self.is_silent = True
            if self._confirmed or self._timer is not None:
                return
            self._episode += 1
            episode = self._episode
            self._timer = self._scheduler.call_later(
                self.sustained_s, lambda: self._elapsed(episode)
            )

    def cancel(self) -> None:
        """Drop any pending timer and ignore all further samples."""
        with self._lock:
            self._closed = True
            self._cancel_timer_locked()

    def _elapsed(self, episode: int) -> None:
        with self._lock:
            if self._closed or episode != self._episode or self._timer is None:
                return
            self._timer = None
            self._confirmed = True
        logger.info("silence confirmed", extra={"sustained_s": self.sustained_s})
        self._on_silence()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
