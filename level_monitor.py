"""Normalized loudness sampling for a live recorder.

The level is computed the way a browser analyser node reports byte
frequency data: a Hann-windowed FFT of the most recent ``fft_size``
samples, magnitudes converted to decibels and mapped from
``[min_db, max_db]`` onto ``[0, 1]``, then averaged across bins.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterator, Optional

import numpy as np

from errors import MonitorStateError
from interfaces import Recorder, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

LevelCallback = Callable[[float], None]

DEFAULT_INTERVAL_S = 1.0 / 60.0
DEFAULT_BACKLOG = 120


def spectral_level(
    samples: np.ndarray,
    fft_size: int = 256,
    min_db: float = -100.0,
    max_db: float = -30.0,
) -> float:
    if samples.size == 0:
        return 0.0
    frame = samples[-fft_size:].astype(np.float64)
    if frame.size < fft_size:
        frame = np.pad(frame, (fft_size - frame.size, 0))
    spectrum = np.fft.rfft(frame * np.hanning(fft_size))[: fft_size // 2]
    magnitude = np.abs(spectrum) / fft_size
    db = 20.0 * np.log10(np.maximum(magnitude, 1e-12))
    scaled = np.clip((db - min_db) / (max_db - min_db), 0.0, 1.0)
    return float(np.mean(scaled))


class AudioLevelMonitor:
    """Single-use sampler bound to one recording episode."""

    def __init__(
        self,
        recorder: Recorder,
        scheduler: Scheduler,
        interval_s: float = DEFAULT_INTERVAL_S,
        fft_size: int = 256,
        backlog: int = DEFAULT_BACKLOG,
    ) -> None:
        self._recorder = recorder
        self._scheduler = scheduler
        self._interval_s = interval_s
        self._fft_size = fft_size
        self._backlog = backlog
        self._lock = threading.Lock()
        self._task: Optional[TimerHandle] = None
        self._on_level: Optional[LevelCallback] = None
        self._started = False
        self._stopped = False
        self._subscribers: list[queue.Queue[float | None]] = []
        self.last_level = 0.0
        self.dropped_levels = 0

    @property
    def active(self) -> bool:
        return self._started and not self._stopped

    def start(self, on_level: Optional[LevelCallback] = None) -> None:
        """Acquire the recorder and begin periodic sampling."""
        with self._lock:
            if self._started:
                raise MonitorStateError("level monitor already started")
            self._started = True
        self._recorder.start()
        self._on_level = on_level
        self._task = self._scheduler.call_repeating(self._interval_s, self._tick)

    def read_level(self) -> float:
        return spectral_level(self._recorder.latest_window(), self._fft_size)

    def levels(self) -> Iterator[float]:
        """Lazy view of the level signal; ends when the monitor stops."""
        if not self._started:
            raise MonitorStateError("level monitor not started")
        inbox: queue.Queue[float | None] = queue.Queue(maxsize=self._backlog)
        with self._lock:
            if self._stopped:
                return iter(())
            self._subscribers.append(inbox)

        def _iterate() -> Iterator[float]:
            while True:
                level = inbox.get()
                if level is None:
                    return
                yield level

        return _iterate()

    def stop(self) -> bytes:
        """Cancel sampling and release the recorder; returns captured audio."""
        with self._lock:
            if not self._started or self._stopped:
                return b""
            self._stopped = True
            task, self._task = self._task, None
            subscribers, self._subscribers = self._subscribers, []
        if task is not None:
            task.cancel()
        for inbox in subscribers:
            self._offer(inbox, None)
        self.last_level = 0.0
        return self._recorder.stop()

    def _tick(self) -> None:
        if self._stopped:
            return
        level = self.read_level()
        self.last_level = level
        with self._lock:
            subscribers = list(self._subscribers)
        for inbox in subscribers:
            self._offer(inbox, level)
        if self._on_level is not None:
            self._on_level(level)

    def _offer(self, inbox: queue.Queue[float | None], item: float | None) -> None:
        """Enqueue without blocking; a slow reader loses its oldest levels."""
        while True:
            try:
                inbox.put_nowait(item)
                return
            except queue.Full:
                try:
                    inbox.get_nowait()
                except queue.Empty:
                    continue
                self.dropped_levels += 1
