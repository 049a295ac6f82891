"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

ACQUISITION_FAILED = "ACQUISITION_FAILED"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
NO_SPEECH = "NO_SPEECH"
DIALOGUE_FAILED = "DIALOGUE_FAILED"
MALFORMED_REPLY = "MALFORMED_REPLY"
SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
TIMEOUT = "TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"

ERROR_MESSAGES = {
    ACQUISITION_FAILED: "Microphone could not be opened, check device and permissions.",
    TRANSCRIPTION_FAILED: "Speech could not be transcribed.",
    NO_SPEECH: "No speech was detected.",
    DIALOGUE_FAILED: "No reply from the tutor.",
    MALFORMED_REPLY: "Tutor reply format is invalid.",
    SYNTHESIS_FAILED: "Reply audio could not be produced.",
    TIMEOUT: "The service did not answer in time.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
}

APOLOGY_TEXT = "Beklager, der opstod en fejl. Prøv venligst igen."
APOLOGY_TRANSLATION = "Sorry, an error occurred. Please try again."


class VoiceLoopError(Exception):
    default_code = TRANSCRIPTION_FAILED

    def __init__(self, message: str = "", code: str | None = None) -> None:
        self.code = code or self.default_code
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))


# Collaborator failures

class ServiceError(VoiceLoopError):
    default_code = NETWORK_ERROR


class NoSpeechDetected(ServiceError):
    default_code = NO_SPEECH


class MalformedResponse(ServiceError):
    default_code = MALFORMED_REPLY


# Phase failures surfaced by the controller

class AcquisitionError(VoiceLoopError):
    default_code = ACQUISITION_FAILED


class TranscriptionError(VoiceLoopError):
    default_code = TRANSCRIPTION_FAILED


class DialogueError(VoiceLoopError):
    default_code = DIALOGUE_FAILED


class SynthesisError(VoiceLoopError):
    default_code = SYNTHESIS_FAILED


class GuardTimeout(VoiceLoopError, TimeoutError):
    default_code = TIMEOUT


class MonitorStateError(RuntimeError):
    """Raised when an AudioLevelMonitor is started twice."""


def classify_exception(exc: BaseException, fallback: str) -> str:
    """Map an SDK/network exception to a standard error code."""
    if isinstance(exc, VoiceLoopError):
        return exc.code
    low = str(exc).lower()
    if "401" in low or "auth" in low or "api key" in low:
        return AUTH_FAILED
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR
    if isinstance(exc, ConnectionError):
        return NETWORK_ERROR
    return fallback
