"""Protocol interfaces used by RecordingController and its helpers."""

from __future__ import annotations

from typing import Callable, Protocol, Sequence

import numpy as np

from models import DialogueReply, HistoryTurn


class TimerHandle(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_repeating(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle: ...

    def submit(self, fn: Callable[[], None]) -> None: ...


class Recorder(Protocol):
    sample_rate: int

    def start(self) -> None: ...

    def stop(self) -> bytes: ...

    def latest_window(self) -> np.ndarray: ...


class TranscriptionService(Protocol):
    def transcribe(
        self,
        audio: bytes,
        encoding: str,
        locale: str,
        options: dict[str, object],
    ) -> str: ...


class DialogueService(Protocol):
    def reply(
        self,
        message: str,
        topic: str,
        history: Sequence[HistoryTurn] = (),
        practice_mode: bool = False,
    ) -> DialogueReply: ...


class SynthesisService(Protocol):
    def synthesize(self, text: str, locale: str, voice: str) -> bytes: ...


class AudioPlayer(Protocol):
    def play(self, audio: bytes) -> None: ...

    def stop(self) -> None: ...
