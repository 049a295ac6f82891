"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any


@dataclass
class Settings:
    api_key: str = ""
    locale: str = "da-DK"
    language: str = "Danish"
    voice: str = "longxiaochun"
    topic: str = ""
    practice_mode: bool = False
    silence_threshold: float = 0.1
    silence_duration_s: float = 1.0
    level_interval_s: float = 1.0 / 60.0
    auto_record: bool = True
    auto_record_delay_s: float = 1.0
    auto_record_arm_delay_s: float = 0.5
    cache_capacity: int = 100
    cache_ttl_s: float = 3600.0
    call_timeout_s: float = 10.0
    dialogue_timeout_s: float = 30.0
    muted: bool = False
    hotkey: str = "Key.alt_l"
    auto_record_hotkey: str = "Key.f8"
    mute_hotkey: str = "Key.f9"
    input_device: int | None = None
    debug: bool = False


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voiceloop" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def load_settings(self) -> Settings:
        data = self._read_all()
        settings = Settings()
        for f in fields(Settings):
            if f.name in data:
                setattr(settings, f.name, _coerce(data[f.name], getattr(settings, f.name)))
        if not settings.api_key:
            settings.api_key = os.getenv("DASHSCOPE_API_KEY", "")
        return settings

    def save_settings(self, settings: Settings) -> None:
        """Persist preferences; the API key is only written by ``set_api_key``."""
        data = self._read_all()
        prefs = asdict(settings)
        prefs.pop("api_key")
        data.update(prefs)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _coerce(value: Any, default: Any) -> Any:
    """Convert a stored value to the default's type, keeping the default on failure."""
    if default is None or value is None:
        return value
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        return str(value)
    except (TypeError, ValueError):
        return default
