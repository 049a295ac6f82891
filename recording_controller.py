"""State-machine based conversation turn orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from dialogue import OPENING_MESSAGE
from errors import (
    APOLOGY_TEXT,
    APOLOGY_TRANSLATION,
    MALFORMED_REPLY,
    NO_SPEECH,
    SYNTHESIS_FAILED,
    AcquisitionError,
    DialogueError,
    TranscriptionError,
    VoiceLoopError,
)
from interfaces import AudioPlayer, DialogueService, Recorder, Scheduler, TranscriptionService
from level_monitor import DEFAULT_INTERVAL_S, AudioLevelMonitor
from models import (
    ControllerState,
    ConversationMessage,
    HistoryTurn,
    ProcessingState,
    RecognitionOptions,
    Role,
)
from silence import DEFAULT_SUSTAINED_S, DEFAULT_THRESHOLD, SilenceDetector
from synthesizer import CachedSpeechSynthesizer
from timeout_guard import TimeoutGuard

logger = logging.getLogger(__name__)

StateCallback = Callable[[ControllerState, ControllerState], None]
LevelCallback = Callable[[float], None]
MessagesCallback = Callable[[list[ConversationMessage]], None]
ErrorCallback = Callable[[str, str], None]

PLACEHOLDER_TEXT = "Transcribing..."
AUDIO_ENCODING = "LINEAR16"


class RecordingController:
    """Serializes capture, transcription, dialogue and speech for one session.

    Every external call runs on a scheduler worker with the lock released.
    Each turn carries the episode id it was started under; a result that
    arrives after the episode has moved on is dropped.
    """

    def __init__(
        self,
        recorder: Recorder,
        transcriber: TranscriptionService,
        dialogue: DialogueService,
        speech: CachedSpeechSynthesizer,
        player: AudioPlayer,
        scheduler: Scheduler,
        guard: TimeoutGuard,
        topic: str = "",
        locale: str = "da-DK",
        practice_mode: bool = False,
        muted: bool = False,
        silence_threshold: float = DEFAULT_THRESHOLD,
        silence_duration_s: float = DEFAULT_SUSTAINED_S,
        level_interval_s: float = DEFAULT_INTERVAL_S,
        transcription_deadline_s: Optional[float] = None,
        dialogue_deadline_s: Optional[float] = 30.0,
        recognition_options: Optional[RecognitionOptions] = None,
        apology_text: str = APOLOGY_TEXT,
        apology_translation: str = APOLOGY_TRANSLATION,
        on_state_change: Optional[StateCallback] = None,
        on_level: Optional[LevelCallback] = None,
        on_messages: Optional[MessagesCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._dialogue = dialogue
        self._speech = speech
        self._player = player
        self._scheduler = scheduler
        self._guard = guard
        self.topic = topic
        self.locale = locale
        self.practice_mode = practice_mode
        self._muted = muted
        self._silence_threshold = silence_threshold
        self._silence_duration_s = silence_duration_s
        self._level_interval_s = level_interval_s
        self._transcription_deadline_s = transcription_deadline_s
        self._dialogue_deadline_s = dialogue_deadline_s
        self._recognition_options = recognition_options or RecognitionOptions()
        self._apology_text = apology_text
        self._apology_translation = apology_translation
        self._state_listeners: list[StateCallback] = [on_state_change] if on_state_change else []
        self._on_level = on_level
        self._on_messages = on_messages
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = ControllerState.IDLE
        self._flags = ProcessingState()
        self._episode = 0
        self._closed = False
        self._monitor: Optional[AudioLevelMonitor] = None
        self._detector: Optional[SilenceDetector] = None
        self._messages: list[ConversationMessage] = []
        self._level = 0.0

    # ------------------------------------------------------------------
    # Observed state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def flags(self) -> ProcessingState:
        with self._lock:
            return ProcessingState(
                transcribing=self._flags.transcribing,
                thinking=self._flags.thinking,
                speaking=self._flags.speaking,
            )

    @property
    def is_idle(self) -> bool:
        with self._lock:
            return self._state == ControllerState.IDLE and not self._flags.any()

    @property
    def level(self) -> float:
        return self._level

    @property
    def is_silent(self) -> bool:
        detector = self._detector
        return detector.is_silent if detector is not None else True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def messages(self) -> list[ConversationMessage]:
        with self._lock:
            return [m.copy() for m in self._messages]

    def add_state_listener(self, callback: StateCallback) -> None:
        self._state_listeners.append(callback)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def start_recording(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            if self._state == ControllerState.RECORDING or self._flags.any():
                logger.debug("start rejected", extra={"state": self._state.value})
                return False
            self._episode += 1
            episode = self._episode
            monitor = AudioLevelMonitor(self._recorder, self._scheduler, self._level_interval_s)
            detector = SilenceDetector(
                self._scheduler,
                on_silence=lambda: self._finish_recording(episode, "silence"),
                threshold=self._silence_threshold,
                sustained_s=self._silence_duration_s,
            )
            try:
                monitor.start(on_level=lambda level: self._handle_level(episode, level))
            except AcquisitionError as exc:
                monitor.stop()
                logger.warning("microphone acquisition failed", extra={"error": str(exc)})
                self._emit_error(exc.code, str(exc))
                return False
            self._monitor = monitor
            self._detector = detector
            self._transition(ControllerState.RECORDING)
            logger.info("recording started", extra={"episode": episode})
            return True

    def stop_recording(self) -> bool:
        with self._lock:
            if self._state != ControllerState.RECORDING:
                return False
            episode = self._episode
        return self._finish_recording(episode, "manual")

    def send_text(self, text: str) -> bool:
        """Typed-input path: skips capture and transcription."""
        message = text.strip()
        if not message:
            return False
        with self._lock:
            if not self._can_begin_turn():
                return False
            self._episode += 1
            episode = self._episode
            history = self._history()
            self._messages.append(ConversationMessage(role=Role.USER.value, content=message))
            self._flags.thinking = True
            self._transition(ControllerState.THINKING)
            self._publish_messages()
        self._scheduler.submit(lambda: self._run_dialogue(episode, message, history))
        return True

    def start_conversation(self) -> bool:
        """Ask the tutor to open the conversation; no user message is shown."""
        with self._lock:
            if not self._can_begin_turn():
                return False
            self._episode += 1
            episode = self._episode
            history = self._history()
            self._flags.thinking = True
            self._transition(ControllerState.THINKING)
        self._scheduler.submit(lambda: self._run_dialogue(episode, OPENING_MESSAGE, history))
        return True

    def replay(self, index: int) -> bool:
        """Speak an earlier assistant message again."""
        with self._lock:
            if not self._can_begin_turn() or self._muted:
                return False
            if not -len(self._messages) <= index < len(self._messages):
                return False
            message = self._messages[index]
            if message.role != Role.ASSISTANT.value or message.error:
                return False
            self._episode += 1
            episode = self._episode
            self._flags.speaking = True
            self._transition(ControllerState.SPEAKING)
        self._scheduler.submit(lambda: self._run_speech(episode, message.content))
        return True

    def set_muted(self, muted: bool) -> None:
        with self._lock:
            self._muted = muted
            speaking = self._flags.speaking
        logger.info("playback muted" if muted else "playback unmuted")
        if muted and speaking:
            self._player.stop()

    def shutdown(self) -> None:
        """Release capture, abandon in-flight calls and return to Idle.

        The controller is closed afterwards; every control is refused.
        """
        with self._lock:
            self._closed = True
            self._episode += 1
            speaking = self._flags.speaking
            audio_owner = self._release_capture()
            self._messages = [m for m in self._messages if not m.is_processing]
            self._flags.clear()
            self._transition(ControllerState.IDLE)
            self._publish_messages()
        if audio_owner is not None:
            audio_owner.stop()
        if speaking:
            self._player.stop()
        logger.info("controller shut down")

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def _handle_level(self, episode: int, level: float) -> None:
        with self._lock:
            if episode != self._episode or self._state != ControllerState.RECORDING:
                return
            detector = self._detector
            self._level = level
        if self._on_level:
            self._on_level(level)
        if detector is not None:
            detector.feed(level)

    def _finish_recording(self, episode: int, reason: str) -> bool:
        with self._lock:
            if episode != self._episode or self._state != ControllerState.RECORDING:
                return False
            monitor = self._release_capture()
            audio = monitor.stop() if monitor is not None else b""
            placeholder = ConversationMessage(
                role=Role.USER.value, content=PLACEHOLDER_TEXT, is_processing=True
            )
            history = self._history()
            self._messages.append(placeholder)
            self._flags.transcribing = True
            self._transition(ControllerState.TRANSCRIBING)
            self._publish_messages()
        logger.info(
            "recording stopped",
            extra={"episode": episode, "reason": reason, "audio_bytes": len(audio)},
        )
        self._scheduler.submit(lambda: self._run_turn(episode, audio, placeholder, history))
        return True

    def _release_capture(self) -> Optional[AudioLevelMonitor]:
        """Detach the detector and monitor; caller stops the returned monitor."""
        detector, self._detector = self._detector, None
        monitor, self._monitor = self._monitor, None
        if detector is not None:
            detector.cancel()
        self._level = 0.0
        return monitor

    # ------------------------------------------------------------------
    # Turn pipeline
    # ------------------------------------------------------------------

    def _run_turn(
        self,
        episode: int,
        audio: bytes,
        placeholder: ConversationMessage,
        history: list[HistoryTurn],
    ) -> None:
        try:
            text = self._guard.run(
                self._transcriber.transcribe,
                audio,
                AUDIO_ENCODING,
                self.locale,
                self._recognition_options.as_dict(),
                deadline_s=self._transcription_deadline_s,
                label="transcription",
            )
        except VoiceLoopError as exc:
            self._fail_turn(episode, TranscriptionError(str(exc), code=exc.code))
            return
        except Exception as exc:
            self._fail_turn(episode, TranscriptionError(str(exc)))
            return

        transcript = (text or "").strip()
        if not transcript:
            self._fail_turn(episode, TranscriptionError("empty transcript", code=NO_SPEECH))
            return

        with self._lock:
            if episode != self._episode:
                return
            self._replace_message(
                placeholder, ConversationMessage(role=Role.USER.value, content=transcript)
            )
            self._flags.transcribing = False
            self._flags.thinking = True
            self._transition(ControllerState.THINKING)
            self._publish_messages()
        self._run_dialogue(episode, transcript, history)

    def _run_dialogue(self, episode: int, message: str, history: list[HistoryTurn]) -> None:
        try:
            reply = self._guard.run(
                self._dialogue.reply,
                message,
                self.topic,
                history,
                self.practice_mode,
                deadline_s=self._dialogue_deadline_s,
                label="dialogue",
            )
        except VoiceLoopError as exc:
            self._fail_turn(episode, DialogueError(str(exc), code=exc.code))
            return
        except Exception as exc:
            self._fail_turn(episode, DialogueError(str(exc)))
            return

        if not reply.primary.strip() or not reply.translation.strip():
            self._fail_turn(episode, DialogueError("reply is missing a part", code=MALFORMED_REPLY))
            return

        with self._lock:
            if episode != self._episode:
                return
            self._messages.append(
                ConversationMessage(
                    role=Role.ASSISTANT.value,
                    content=reply.primary,
                    translation=reply.translation,
                )
            )
            self._flags.thinking = False
            self._publish_messages()
            if self._muted:
                self._transition(ControllerState.IDLE)
                return
            self._flags.speaking = True
            self._transition(ControllerState.SPEAKING)
        self._run_speech(episode, reply.primary)

    def _run_speech(self, episode: int, text: str) -> None:
        try:
            audio = self._speech.synthesize(text)
            with self._lock:
                play = episode == self._episode and not self._muted
            if play:
                self._player.play(audio)
        except VoiceLoopError as exc:
            # the text reply stands; only the audio is lost
            logger.warning("speech skipped", extra={"code": exc.code, "error": str(exc)})
            self._emit_error(exc.code, str(exc))
        except Exception as exc:
            logger.warning("speech skipped", extra={"error": str(exc)})
            self._emit_error(SYNTHESIS_FAILED, str(exc))
        finally:
            with self._lock:
                if episode == self._episode:
                    self._flags.clear()
                    self._transition(ControllerState.IDLE)

    def _fail_turn(self, episode: int, error: VoiceLoopError) -> None:
        with self._lock:
            if episode != self._episode:
                logger.debug("late failure ignored", extra={"episode": episode})
                return
            self._messages = [m for m in self._messages if not m.is_processing]
            self._messages.append(
                ConversationMessage(
                    role=Role.ASSISTANT.value,
                    content=self._apology_text,
                    translation=self._apology_translation,
                    error=True,
                )
            )
            self._flags.clear()
            self._transition(ControllerState.IDLE)
            self._publish_messages()
        logger.warning("turn failed", extra={"code": error.code, "error": str(error)})
        self._emit_error(error.code, str(error))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _can_begin_turn(self) -> bool:
        return not self._closed and self._state == ControllerState.IDLE and not self._flags.any()

    def _history(self) -> list[HistoryTurn]:
        return [
            HistoryTurn(role=m.role, content=m.content)
            for m in self._messages
            if not m.error and not m.is_processing
        ]

    def _replace_message(self, old: ConversationMessage, new: ConversationMessage) -> None:
        for i, message in enumerate(self._messages):
            if message is old:
                self._messages[i] = new
                return
        self._messages.append(new)

    def _publish_messages(self) -> None:
        if self._on_messages:
            self._on_messages([m.copy() for m in self._messages])

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: ControllerState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.info("state %s -> %s", from_state.value, to_state.value)
        for listener in list(self._state_listeners):
            listener(from_state, to_state)
