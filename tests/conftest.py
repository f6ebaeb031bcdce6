"""Shared helpers for building Power.log content."""

import time
from datetime import datetime, timedelta

import pytest

from hsuploader.loglines import parse_timestamp

# Anchor test timestamps an hour in the past so they never land in the future
BASE_TIME = datetime.now().replace(microsecond=0) - timedelta(hours=1)


def stamp(seconds: float) -> str:
    return (BASE_TIME + timedelta(seconds=seconds)).strftime("%H:%M:%S") + ".0000000"


def power_line(seconds: float, text: str) -> str:
    """A Power.log data line at BASE_TIME + seconds."""
    return f"D {stamp(seconds)} GameState.DebugPrintPower() - {text}"


def timestamp_at(seconds: float):
    return parse_timestamp(power_line(seconds, ""))


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is truthy or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "Power.log"


def write_lines(path, lines, mode="a", newline="\n"):
    with open(path, mode, encoding="utf-8", newline="") as f:
        for line in lines:
            f.write(line + newline)
        f.flush()


class FakeInspector:
    """State inspector returning scripted values.

    Each value can be a plain value or a list consumed one call at a time;
    the last list entry repeats once the list is exhausted.
    """

    def __init__(self, **values):
        self.values = values
        self.calls: dict[str, int] = {}

    def _next(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1
        value = self.values.get(name)
        if isinstance(value, list):
            if len(value) > 1:
                return value.pop(0)
            return value[0] if value else None
        return value

    def get_server_info(self):
        return self._next("server_info")

    def get_format(self):
        return self._next("format")

    def get_game_type(self):
        return self._next("game_type")

    def get_match_info(self):
        return self._next("match_info")

    def get_decks(self):
        return self._next("decks")

    def get_selected_deck_in_menu(self):
        return self._next("selected_deck")

    def get_current_scene_mode(self):
        return self._next("scene")
