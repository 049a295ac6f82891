from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from hotkey import GlobalHotkeyAdapter


class _Key:
    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return self._name


def test_press_fires_once_until_released() -> None:
    calls: list[str] = []
    adapter = GlobalHotkeyAdapter({"Key.alt_l": lambda: calls.append("talk")})

    adapter._on_press(_Key("Key.alt_l"))
    adapter._on_press(_Key("Key.alt_l"))
    adapter._on_release(_Key("Key.alt_l"))
    adapter._on_press(_Key("Key.alt_l"))

    assert calls == ["talk", "talk"]


def test_unbound_keys_are_ignored() -> None:
    calls: list[str] = []
    adapter = GlobalHotkeyAdapter({"Key.f8": lambda: calls.append("auto")})

    adapter._on_press(_Key("Key.f9"))

    assert calls == []


@patch("hotkey.keyboard")
def test_start_and_stop_listener(mock_keyboard: MagicMock) -> None:
    adapter = GlobalHotkeyAdapter({})
    adapter.start()
    mock_keyboard.Listener.return_value.start.assert_called_once()

    adapter.stop()
    mock_keyboard.Listener.return_value.stop.assert_called_once()


@patch("hotkey.keyboard", None)
def test_start_without_pynput() -> None:
    with pytest.raises(RuntimeError, match="pynput"):
        GlobalHotkeyAdapter({}).start()
