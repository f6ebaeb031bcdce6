"""Verification of Hearthstone's log.config.

The client only writes Power.log when log.config enables it. This module
checks the file and creates or fixes the [Power] section when needed.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_local_appdata = os.environ.get("LOCALAPPDATA", "")
if _local_appdata:
    LOG_CONFIG_PATH = Path(_local_appdata) / "Blizzard" / "Hearthstone" / "log.config"
else:
    LOG_CONFIG_PATH = Path.home() / "AppData" / "Local" / "Blizzard" / "Hearthstone" / "log.config"

# Required settings per log section
REQUIRED_SECTIONS: dict[str, dict[str, str]] = {
    "Power": {
        "LogLevel": "1",
        "FilePrinting": "True",
        "ConsolePrinting": "False",
        "ScreenPrinting": "False",
        "Verbose": "True",
    },
}


class LogConfigState(Enum):
    OK = "ok"  # log.config exists and is correct
    UPDATED = "updated"  # created or fixed; a running game must be restarted
    ERROR = "error"  # see LogConfigResult.exception


@dataclass(frozen=True)
class LogConfigResult:
    state: LogConfigState
    exception: Optional[BaseException] = None


def _parse(text: str) -> tuple[list[str], dict[str, dict[str, str]]]:
    """Split log.config into section order and key/value pairs.

    The file is INI-like but case sensitive, and unknown sections must be
    preserved as written.
    """
    order: list[str] = []
    sections: dict[str, dict[str, str]] = {}
    current: Optional[str] = None
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(";") or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            current = line[1:-1].strip()
            if current not in sections:
                order.append(current)
                sections[current] = {}
            continue
        if current is None or "=" not in line:
            continue
        key, _, value = line.partition("=")
        sections[current][key.strip()] = value.strip()
    return order, sections


def _render(order: list[str], sections: dict[str, dict[str, str]]) -> str:
    blocks = []
    for name in order:
        lines = [f"[{name}]"] + [f"{k}={v}" for k, v in sections[name].items()]
        blocks.append("\n".join(lines))
    return "\n".join(blocks) + "\n"


def check_log_config(path: Optional[Path] = None) -> bool:
    """Ensure log.config has the required sections.

    Returns:
        True if the file was created or changed.

    Raises:
        OSError: If the file cannot be read or written.
    """
    path = path or LOG_CONFIG_PATH
    text = path.read_text(encoding="utf-8") if path.exists() else ""
    order, sections = _parse(text)

    updated = not path.exists()
    for name, required in REQUIRED_SECTIONS.items():
        if name not in sections:
            order.append(name)
            sections[name] = {}
            updated = True
        section = sections[name]
        for key, value in required.items():
            if section.get(key, "").lower() != value.lower():
                section[key] = value
                updated = True

    if updated:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_render(order, sections), encoding="utf-8")
        logger.info(f"Updated {path}")
    return updated


def verify_log_config(path: Optional[Path] = None) -> LogConfigResult:
    """Verify log.config, creating or updating it if needed. Never raises."""
    try:
        updated = check_log_config(path)
        return LogConfigResult(LogConfigState.UPDATED if updated else LogConfigState.OK)
    except Exception as e:
        logger.warning(f"Could not verify log.config: {e}")
        return LogConfigResult(LogConfigState.ERROR, e)
