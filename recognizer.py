"""Transcription adapter using DashScope qwen3-asr-flash.

The qwen3-asr-flash model accepts complete audio (file path, URL, or base64)
and streams back recognition results via ``stream=True``.  The captured
utterance is already a WAV container; it is sent as a base64 data URI and
the last non-empty streamed text is taken as the transcript.
"""

from __future__ import annotations

import base64
import logging
import os
from typing import Optional

from errors import TRANSCRIPTION_FAILED, AUTH_FAILED, NoSpeechDetected, ServiceError, classify_exception

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


def locale_language(locale: str) -> str:
    """``da-DK`` -> ``da``."""
    return locale.split("-")[0].split("_")[0].lower()


def _wav_data_uri(wav: bytes) -> str:
    return "data:audio/wav;base64," + base64.b64encode(wav).decode("ascii")


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def transcribe(
        self,
        audio: bytes,
        encoding: str = "LINEAR16",
        locale: str = "da-DK",
        options: Optional[dict[str, object]] = None,
    ) -> str:
        if not audio:
            raise NoSpeechDetected("no audio captured")
        if dashscope is None:
            raise ServiceError("dashscope is not installed", code=TRANSCRIPTION_FAILED)

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ServiceError("No API key configured", code=AUTH_FAILED)

        asr_options: dict[str, object] = {"language": locale_language(locale), "enable_itn": False}
        asr_options.update(options or {})
        logger.debug(
            "transcription request",
            extra={"encoding": encoding, "locale": locale, "audio_bytes": len(audio)},
        )

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": _wav_data_uri(audio)}]},
                ],
                result_format="message",
                asr_options=asr_options,
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest_text = ""
            for chunk in response:
                self._raise_for_status(chunk)
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(str(exc), code=classify_exception(exc, TRANSCRIPTION_FAILED)) from exc

        if not latest_text.strip():
            raise NoSpeechDetected()
        return latest_text.strip()

    def _raise_for_status(self, chunk: object) -> None:
        status = _get(chunk, "status_code")
        if status is None or status == 200:
            return
        message = str(_get(chunk, "message") or f"status {status}")
        code = AUTH_FAILED if status == 401 else TRANSCRIPTION_FAILED
        raise ServiceError(message, code=code)

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk."""
        output = _get(chunk, "output") or {}
        choices = _get(output, "choices") or []
        if not choices:
            return ""
        message = _get(choices[0], "message") or {}
        content = _get(message, "content") or []
        if not content:
            return ""
        value = content[0]
        if isinstance(value, dict):
            return str(value.get("text", ""))
        return ""


def _get(obj: object, key: str) -> object:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)
