"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

from auto_record import AutoRecordScheduler
from config import JsonConfigStore, Settings
from dialogue import DashscopeDialogueService
from errors import ERROR_MESSAGES
from hotkey import GlobalHotkeyAdapter
from logging_setup import setup_logging
from models import ControllerState, ConversationMessage, Role
from player import SoundDevicePlayer
from recognizer import DashscopeTranscriber
from recorder import SoundDeviceRecorder
from recording_controller import RecordingController
from scheduler import ThreadScheduler
from speech_cache import SpeechCache
from synthesizer import CachedSpeechSynthesizer, DashscopeSynthesizer
from timeout_guard import TimeoutGuard

logger = logging.getLogger(__name__)

STATE_LABELS = {
    ControllerState.IDLE: "Ready",
    ControllerState.RECORDING: "Listening...",
    ControllerState.TRANSCRIBING: "Transcribing...",
    ControllerState.THINKING: "Thinking...",
    ControllerState.SPEAKING: "Speaking...",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Voice conversation practice loop")
    parser.add_argument("--topic", default=None, help="conversation topic, e.g. weather")
    parser.add_argument("--practice", action="store_true", help="pronunciation practice mode")
    parser.add_argument("--no-auto-record", action="store_true", help="do not re-arm capture")
    parser.add_argument("--mute", action="store_true", help="start with playback muted")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    parser.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    parser.add_argument("--config", default=None, help="path of the JSON settings file")
    parser.add_argument("--set-api-key", default=None, metavar="KEY", help="store the DashScope API key and exit")
    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.topic is not None:
        settings.topic = args.topic
    if args.practice:
        settings.practice_mode = True
    if args.no_auto_record:
        settings.auto_record = False
    if args.mute:
        settings.muted = True
    if args.debug:
        settings.debug = True
    return settings


class App:
    def __init__(self, settings: Settings, store: Optional[JsonConfigStore] = None) -> None:
        self.settings = settings
        self.store = store
        self.scheduler = ThreadScheduler()
        self.guard = TimeoutGuard(default_deadline_s=settings.call_timeout_s)
        self.cache = SpeechCache(capacity=settings.cache_capacity, ttl_s=settings.cache_ttl_s)
        self._shown = 0
        self._print_lock = threading.Lock()

        speech = CachedSpeechSynthesizer(
            DashscopeSynthesizer(api_key=settings.api_key),
            self.cache,
            self.guard,
            locale=settings.locale,
            voice=settings.voice,
        )
        self.controller = RecordingController(
            recorder=SoundDeviceRecorder(device=settings.input_device),
            transcriber=DashscopeTranscriber(api_key=settings.api_key),
            dialogue=DashscopeDialogueService(api_key=settings.api_key, language=settings.language),
            speech=speech,
            player=SoundDevicePlayer(),
            scheduler=self.scheduler,
            guard=self.guard,
            topic=settings.topic,
            locale=settings.locale,
            practice_mode=settings.practice_mode,
            muted=settings.muted,
            silence_threshold=settings.silence_threshold,
            silence_duration_s=settings.silence_duration_s,
            level_interval_s=settings.level_interval_s,
            dialogue_deadline_s=settings.dialogue_timeout_s,
            on_state_change=self._on_state_change,
            on_messages=self._on_messages,
            on_error=self._on_error,
        )
        self.auto_record = AutoRecordScheduler(
            self.controller,
            self.scheduler,
            enabled=settings.auto_record,
            rearm_delay_s=settings.auto_record_delay_s,
            arm_delay_s=settings.auto_record_arm_delay_s,
        )
        self.hotkey = GlobalHotkeyAdapter(
            {
                settings.hotkey: self.toggle_recording,
                settings.auto_record_hotkey: self.toggle_auto_record,
                settings.mute_hotkey: self.toggle_mute,
            }
        )

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def toggle_recording(self) -> None:
        if self.controller.state == ControllerState.RECORDING:
            self.controller.stop_recording()
        else:
            self.controller.start_recording()

    def toggle_auto_record(self) -> None:
        enabled = self.auto_record.toggle()
        self._say(f"[auto-record {'on' if enabled else 'off'}]")

    def toggle_mute(self) -> None:
        self.controller.set_muted(not self.controller.muted)
        self._say(f"[audio {'muted' if self.controller.muted else 'on'}]")

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: ControllerState, to_state: ControllerState) -> None:
        self._say(f"-- {STATE_LABELS[to_state]}")

    def _on_messages(self, messages: list[ConversationMessage]) -> None:
        with self._print_lock:
            if len(messages) < self._shown:
                self._shown = 0
            fresh: list[ConversationMessage] = []
            for message in messages[self._shown :]:
                if message.is_processing:
                    # placeholder; printed once replaced
                    break
                fresh.append(message)
            for message in fresh:
                print(_render(message), flush=True)
            self._shown += len(fresh)

    def _on_error(self, code: str, message: str) -> None:
        self._say(f"!! {ERROR_MESSAGES.get(code, code)} ({message})")

    def _say(self, line: str) -> None:
        with self._print_lock:
            print(line, flush=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start()
        except Exception as exc:
            self._say(f"!! Hotkeys disabled: {exc}")
        self._say(
            f"Press {self.settings.hotkey} to talk, {self.settings.auto_record_hotkey} "
            f"for auto-record, {self.settings.mute_hotkey} to mute. Type text and Enter to send, Ctrl-C to quit."
        )
        self.controller.start_conversation()
        try:
            while True:
                line = input()
                if line.strip():
                    if not self.controller.send_text(line):
                        self._say("!! Busy, try again when ready")
        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.quit()
        return 0

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.shutdown()
        self.auto_record.cancel()
        self._save_toggles()

    def _save_toggles(self) -> None:
        """Remember the auto-record and mute toggles for the next session."""
        if self.store is None:
            return
        stored = self.store.load_settings()
        stored.auto_record = self.auto_record.enabled
        stored.muted = self.controller.muted
        self.store.save_settings(stored)


def _render(message: ConversationMessage) -> str:
    who = "You" if message.role == Role.USER.value else "Tutor"
    line = f"{who}: {message.content}"
    if message.translation:
        line += f"\n      ({message.translation})"
    return line


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.list_devices:
        print(SoundDeviceRecorder.list_devices())
        return 0
    store = JsonConfigStore(Path(args.config) if args.config else None)
    if args.set_api_key is not None:
        store.set_api_key(args.set_api_key.strip())
        print(f"API key saved to {store.path}")
        return 0
    settings = apply_args(store.load_settings(), args)
    log_path = setup_logging(debug=settings.debug)
    logger.info("starting", extra={"log_path": str(log_path), "topic": settings.topic})
    app = App(settings, store)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
