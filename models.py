"""Core data models for the conversation loop."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class ControllerState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    TRANSCRIBING = "TRANSCRIBING"
    THINKING = "THINKING"
    SPEAKING = "SPEAKING"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ProcessingState:
    transcribing: bool = False
    thinking: bool = False
    speaking: bool = False

    def any(self) -> bool:
        return self.transcribing or self.thinking or self.speaking

    def clear(self) -> None:
        self.transcribing = False
        self.thinking = False
        self.speaking = False


@dataclass
class ConversationMessage:
    role: str
    content: str
    translation: str = ""
    error: bool = False
    is_processing: bool = False

    def copy(self) -> "ConversationMessage":
        return replace(self)


@dataclass
class DialogueReply:
    primary: str
    translation: str


@dataclass
class CacheEntry:
    key: str
    audio: bytes
    created_at: float


@dataclass
class HistoryTurn:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class RecognitionOptions:
    """Options forwarded to the transcription collaborator."""

    enable_itn: bool = False
    enable_lid: bool = False
    extra: dict[str, object] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        options: dict[str, object] = {
            "enable_itn": self.enable_itn,
            "enable_lid": self.enable_lid,
        }
        options.update(self.extra)
        return options
