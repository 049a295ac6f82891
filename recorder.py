"""Microphone recorder adapter."""

from __future__ import annotations

import io
import logging
import threading
import wave
from collections import deque
from typing import Any, Optional

from errors import AcquisitionError

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def pcm16_to_wav(pcm: bytes, sample_rate: int = 16000, channels: int = 1) -> bytes:
    """Wrap raw little-endian int16 PCM in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class SoundDeviceRecorder:
    """Captures one utterance and keeps a rolling window for level analysis."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 20,
        window_samples: int = 256,
        device: Optional[int] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self._window_samples = window_samples
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._pcm = bytearray()
        self._window: deque[int] = deque(maxlen=window_samples)

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None or np is None:
                raise AcquisitionError("sounddevice is not installed")
            self._pcm = bytearray()
            self._window.clear()
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    device=self.device,
                    callback=self._on_audio,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                raise AcquisitionError(f"failed to open microphone: {exc}") from exc
            self._running = True
            logger.debug("microphone opened", extra={"sample_rate": self.sample_rate})

    def stop(self) -> bytes:
        with self._lock:
            if not self._running:
                return b""
            self._running = False
            stream, self._stream = self._stream, None
            pcm = bytes(self._pcm)
            self._pcm = bytearray()
            self._window.clear()
        if stream is not None:
            try:
                stream.stop()
            finally:
                stream.close()
        logger.debug("microphone released", extra={"captured_bytes": len(pcm)})
        if not pcm:
            return b""
        return pcm16_to_wav(pcm, self.sample_rate, self.channels)

    def latest_window(self) -> "np.ndarray":
        with self._lock:
            samples = list(self._window)
        if not samples:
            return np.zeros(0, dtype=np.float32)
        return np.asarray(samples, dtype=np.float32) / 32768.0

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or np is None:
            return
        block = np.asarray(indata, dtype=np.int16)
        mono = block[:, 0] if block.ndim > 1 else block
        with self._lock:
            if not self._running:
                return
            self._pcm.extend(block.tobytes())
            self._window.extend(int(v) for v in mono)

    @staticmethod
    def list_devices() -> str:
        if sd is None:
            raise AcquisitionError("sounddevice is not installed")
        return str(sd.query_devices())
