"""Blocking WAV playback through sounddevice."""

from __future__ import annotations

import io
import logging
import wave

from errors import SynthesisError

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def decode_wav(audio: bytes) -> tuple["np.ndarray", int]:
    """Return int16 samples shaped (frames, channels) and the sample rate."""
    try:
        with wave.open(io.BytesIO(audio), "rb") as wf:
            if wf.getsampwidth() != 2:
                raise SynthesisError(f"unsupported sample width {wf.getsampwidth()}")
            channels = wf.getnchannels()
            rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise SynthesisError(f"invalid WAV audio: {exc}") from exc
    samples = np.frombuffer(frames, dtype=np.int16).reshape(-1, channels)
    return samples, rate


class SoundDevicePlayer:
    def __init__(self, device: int | None = None) -> None:
        self.device = device

    def play(self, audio: bytes) -> None:
        if sd is None or np is None:
            raise SynthesisError("sounddevice is not installed")
        samples, rate = decode_wav(audio)
        logger.debug("playback started", extra={"frames": len(samples), "sample_rate": rate})
        try:
            sd.play(samples, samplerate=rate, device=self.device)
            sd.wait()
        except Exception as exc:
            raise SynthesisError(f"playback failed: {exc}") from exc

    def stop(self) -> None:
        if sd is not None:
            sd.stop()
