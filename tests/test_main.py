from __future__ import annotations

import json
from pathlib import Path

from config import JsonConfigStore, Settings
from main import App, _render, apply_args, build_parser, main
from models import ConversationMessage


def test_cli_flags_override_settings() -> None:
    args = build_parser().parse_args(["--topic", "food", "--practice", "--no-auto-record", "--mute"])

    settings = apply_args(Settings(topic="weather"), args)

    assert settings.topic == "food"
    assert settings.practice_mode is True
    assert settings.auto_record is False
    assert settings.muted is True


def test_missing_flags_keep_stored_settings() -> None:
    settings = apply_args(Settings(topic="weather", auto_record=True), build_parser().parse_args([]))

    assert settings.topic == "weather"
    assert settings.auto_record is True


def test_render_shows_translation() -> None:
    text = _render(ConversationMessage(role="assistant", content="Hej!", translation="Hi!"))
    assert text.startswith("Tutor: Hej!")
    assert "(Hi!)" in text
    assert _render(ConversationMessage(role="user", content="Hej")) == "You: Hej"


def test_set_api_key_stores_key_and_exits(tmp_path: Path) -> None:
    path = tmp_path / "config.json"

    assert main(["--config", str(path), "--set-api-key", " sk-123 "]) == 0

    assert json.loads(path.read_text(encoding="utf-8"))["api_key"] == "sk-123"


def test_quit_remembers_toggles(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    app = App(Settings(topic="food", auto_record=True), store)

    app.toggle_auto_record()
    app.toggle_mute()
    app.quit()

    stored = store.load_settings()
    assert stored.auto_record is False
    assert stored.muted is True
    assert stored.topic == ""
    assert app.controller.closed is True
