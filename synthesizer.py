"""Speech synthesis adapter and its cached, deadline-guarded front."""

from __future__ import annotations

import logging
import os
from typing import Optional

from errors import (
    AUTH_FAILED,
    SYNTHESIS_FAILED,
    TIMEOUT,
    ServiceError,
    SynthesisError,
    VoiceLoopError,
    classify_exception,
)
from interfaces import SynthesisService
from speech_cache import SpeechCache
from timeout_guard import TimeoutGuard

try:
    import dashscope
    from dashscope.audio.tts_v2 import AudioFormat, SpeechSynthesizer
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    AudioFormat = None  # type: ignore
    SpeechSynthesizer = None  # type: ignore

logger = logging.getLogger(__name__)


class DashscopeSynthesizer:
    def __init__(self, api_key: str, model: str = "cosyvoice-v1") -> None:
        self._api_key = api_key
        self._model = model

    def synthesize(self, text: str, locale: str, voice: str) -> bytes:
        if dashscope is None or SpeechSynthesizer is None:
            raise ServiceError("dashscope is not installed", code=SYNTHESIS_FAILED)
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ServiceError("No API key configured", code=AUTH_FAILED)

        dashscope.api_key = api_key
        logger.debug("synthesis request", extra={"locale": locale, "voice": voice, "chars": len(text)})
        try:
            synthesizer = SpeechSynthesizer(
                model=self._model,
                voice=voice,
                format=AudioFormat.WAV_22050HZ_MONO_16BIT,
            )
            audio = synthesizer.call(text)
        except Exception as exc:
            raise ServiceError(str(exc), code=classify_exception(exc, SYNTHESIS_FAILED)) from exc
        if not audio:
            raise ServiceError("No audio content received", code=SYNTHESIS_FAILED)
        return bytes(audio)


class CachedSpeechSynthesizer:
    """Serves repeated phrases from ``SpeechCache`` before calling out."""

    def __init__(
        self,
        service: SynthesisService,
        cache: SpeechCache,
        guard: TimeoutGuard,
        locale: str = "da-DK",
        voice: str = "longxiaochun",
        deadline_s: Optional[float] = None,
    ) -> None:
        self._service = service
        self._cache = cache
        self._guard = guard
        self.locale = locale
        self.voice = voice
        self._deadline_s = deadline_s

    @property
    def cache(self) -> SpeechCache:
        return self._cache

    def synthesize(self, text: str, cache_key: Optional[str] = None) -> bytes:
        key = cache_key or text
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("speech cache hit", extra={"cache_key": key})
            return cached
        logger.debug("speech cache miss", extra={"cache_key": key})
        try:
            audio = self._guard.run(
                self._service.synthesize,
                text,
                self.locale,
                self.voice,
                deadline_s=self._deadline_s,
                label="synthesis",
            )
        except VoiceLoopError as exc:
            code = exc.code if exc.code in (AUTH_FAILED, TIMEOUT) else SYNTHESIS_FAILED
            raise SynthesisError(str(exc), code=code) from exc
        except Exception as exc:
            raise SynthesisError(str(exc)) from exc
        self._cache.put(key, audio)
        return audio
