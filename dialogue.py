"""Tutor dialogue adapter using DashScope text generation."""

from __future__ import annotations

import logging
import os
from typing import Sequence

from errors import AUTH_FAILED, DIALOGUE_FAILED, MalformedResponse, ServiceError, classify_exception
from models import DialogueReply, HistoryTurn

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

OPENING_MESSAGE = "Start conversation"

BASE_INSTRUCTIONS = (
    "You may invent family friendly, fun details to keep the conversation "
    "interesting and moving. Always end your reply with a question. "
    "You are here to help the user learn {language} and enjoy it, and you may "
    "role play within the topic. If the user makes a mistake, gently correct "
    "it and then carry on with the conversation. Refer back to earlier "
    "exchanges when it helps the conversation feel natural."
)
RESPONSE_FORMAT = (
    "Respond in {language} and put an English translation in parentheses "
    "after it. Keep responses short, natural and family friendly."
)
PRACTICE_INSTRUCTIONS = (
    "Focus on pronunciation and common phrases. Give phonetic guidance when "
    "introducing new words."
)


def build_system_prompt(topic: str, language: str = "Danish", practice_mode: bool = False) -> str:
    parts = [f"You are a {language} language tutor."]
    if topic:
        parts.append(f"The user wants to practice {language} conversation about {topic}.")
    parts.append(RESPONSE_FORMAT.format(language=language))
    parts.append(BASE_INSTRUCTIONS.format(language=language))
    if practice_mode:
        parts.append(PRACTICE_INSTRUCTIONS)
    return " ".join(parts)


def parse_reply(text: str) -> DialogueReply:
    """Split ``"primary (translation)"`` into its two parts."""
    primary, sep, rest = text.partition("(")
    primary = primary.strip()
    translation = rest.split(")", 1)[0].strip() if sep else ""
    if not primary or not translation:
        raise MalformedResponse(f"expected 'text (translation)', got {text!r}")
    return DialogueReply(primary=primary, translation=translation)


class DashscopeDialogueService:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-plus",
        language: str = "Danish",
        temperature: float = 0.7,
        max_tokens: int = 150,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._temperature = temperature
        self._max_tokens = max_tokens

    def reply(
        self,
        message: str,
        topic: str,
        history: Sequence[HistoryTurn] = (),
        practice_mode: bool = False,
    ) -> DialogueReply:
        if dashscope is None:
            raise ServiceError("dashscope is not installed", code=DIALOGUE_FAILED)
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ServiceError("No API key configured", code=AUTH_FAILED)

        messages = [
            {
                "role": "system",
                "content": build_system_prompt(topic, self._language, practice_mode),
            }
        ]
        messages.extend(turn.as_dict() for turn in history)
        messages.append({"role": "user", "content": message})

        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=messages,
                result_format="message",
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            raise ServiceError(str(exc), code=classify_exception(exc, DIALOGUE_FAILED)) from exc

        content = self._extract_content(response)
        logger.debug("raw tutor reply", extra={"reply": content})
        return parse_reply(content)

    def _extract_content(self, response: object) -> str:
        if response is None:
            raise ServiceError("empty response", code=DIALOGUE_FAILED)
        status = _get(response, "status_code")
        if status is not None and status != 200:
            code = AUTH_FAILED if status == 401 else DIALOGUE_FAILED
            raise ServiceError(str(_get(response, "message") or f"status {status}"), code=code)
        output = _get(response, "output") or {}
        choices = _get(output, "choices") or []
        if not choices:
            raise MalformedResponse("no choices in reply")
        message = _get(choices[0], "message") or {}
        content = _get(message, "content")
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponse("empty reply content")
        return content


def _get(obj: object, key: str) -> object:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)
