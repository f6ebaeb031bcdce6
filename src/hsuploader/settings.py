"""Persistent settings for the uploader.

Settings are stored in ~/.hsuploader/settings.json. A few values can be
overridden from the environment, which wins over the file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Settings file location
SETTINGS_DIR = Path.home() / ".hsuploader"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"

# Default settings
DEFAULTS = {
    "api_key": "",
    "upload_token": "",
    "test_data": False,
    "install_dir": None,  # None = resolve from the running game
    # SceneMode / BnetGameType names eligible for upload
    "allowed_modes": ["FRIENDLY", "ADVENTURE"],
    "read_delay": 0.5,
    "upload_retries": 2,
    "retry_delay": 5.0,
    "metadata_attempts": 6,  # None = poll until the value exists
}

ENV_OVERRIDES = {
    "HSUPLOADER_API_KEY": "api_key",
    "HSUPLOADER_UPLOAD_TOKEN": "upload_token",
    "HSUPLOADER_INSTALL_DIR": "install_dir",
}


class Settings:
    """Persistent settings manager.

    Example:
        settings = Settings()
        token = settings.get("upload_token")
        settings.set("upload_token", client.create_upload_token())
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        """Initialize settings, loading from disk if available.

        Args:
            path: Settings file. Defaults to ~/.hsuploader/settings.json.
        """
        self.path = path or SETTINGS_FILE
        self._data: dict[str, Any] = DEFAULTS.copy()
        self._load()

    def _load(self) -> None:
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                # Merge with defaults (new settings get defaults)
                for key, value in loaded.items():
                    self._data[key] = value
                logger.debug(f"Loaded settings from {self.path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load settings: {e}")

        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                self._data[key] = value

    def save(self) -> None:
        """Save settings to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            logger.debug(f"Saved settings to {self.path}")
        except OSError as e:
            logger.warning(f"Failed to save settings: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value, falling back to ``default`` then DEFAULTS."""
        return self._data.get(key, default if default is not None else DEFAULTS.get(key))

    def set(self, key: str, value: Any, save: bool = True) -> None:
        """Set a setting value, saving immediately unless ``save`` is False."""
        self._data[key] = value
        if save:
            self.save()

    def reset(self) -> None:
        """Reset all settings to defaults."""
        self._data = DEFAULTS.copy()
        self.save()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
