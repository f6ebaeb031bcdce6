"""hsuploader: watches Hearthstone games and uploads their logs to HSReplay.net."""

from typing import Any, Optional, Union

from hsuploader.client import HsReplayClient, UploadClient
from hsuploader.detector import SessionDetector, SessionState, trim_session_log
from hsuploader.enums import BnetGameType, FormatType, GameType, SceneMode, get_bnet_game_type
from hsuploader.exceptions import HsUploaderError, InstallNotFoundError, UploadError
from hsuploader.log_config import LogConfigResult, LogConfigState, verify_log_config
from hsuploader.loglines import LogLine, ReaderConfig
from hsuploader.metadata import MetadataGenerator, StateInspector, UploadMetadata
from hsuploader.orchestrator import (
    HearthstoneWatcher,
    SessionEndedEvent,
    SessionStartedEvent,
    WatcherState,
)
from hsuploader.policy import SessionClass, UploadPolicy
from hsuploader.settings import Settings, get_settings
from hsuploader.tailer import Tailer
from hsuploader.watchers import DeckWatcher, ProcessWatcher

__version__ = "0.1.0"


def parse_allowed_mode(name: str) -> Union[SceneMode, BnetGameType]:
    """Look up an allow-list entry by SceneMode or BnetGameType name."""
    if name in SceneMode.__members__:
        return SceneMode[name]
    if name in BnetGameType.__members__:
        return BnetGameType[name]
    raise ValueError(f"Unknown scene mode or game type: {name}")


def create_watcher(
    inspector: StateInspector,
    settings: Optional[Settings] = None,
    client: Optional[UploadClient] = None,
    **overrides: Any,
) -> HearthstoneWatcher:
    """Create a HearthstoneWatcher configured from settings.

    Args:
        inspector: Live game state source.
        settings: Settings to read. Defaults to the global settings.
        client: Upload client. Defaults to an HsReplayClient built from the
            api_key, upload_token and test_data settings.
        **overrides: Extra HearthstoneWatcher keyword arguments.

    Returns:
        The watcher, not yet started.

    Example:
        watcher = create_watcher(my_inspector)
        watcher.session_ended.connect(report)
        watcher.start()
    """
    settings = settings or get_settings()
    if client is None:
        client = HsReplayClient(
            settings.get("api_key"),
            upload_token=settings.get("upload_token") or None,
            test_data=bool(settings.get("test_data")),
        )

    kwargs: dict[str, Any] = {
        "install_dir": settings.get("install_dir"),
        "upload_retries": int(settings.get("upload_retries")),
        "retry_delay": float(settings.get("retry_delay")),
        "metadata_attempts": settings.get("metadata_attempts"),
        "read_delay": float(settings.get("read_delay")),
    }
    kwargs.update(overrides)
    allowed = [parse_allowed_mode(name) for name in settings.get("allowed_modes")]
    return HearthstoneWatcher(client, inspector, allowed, **kwargs)


__all__ = [
    "__version__",
    "create_watcher",
    "parse_allowed_mode",
    "HearthstoneWatcher",
    "WatcherState",
    "SessionStartedEvent",
    "SessionEndedEvent",
    "Tailer",
    "LogLine",
    "ReaderConfig",
    "SessionDetector",
    "SessionState",
    "trim_session_log",
    "ProcessWatcher",
    "DeckWatcher",
    "MetadataGenerator",
    "StateInspector",
    "UploadMetadata",
    "UploadClient",
    "HsReplayClient",
    "SessionClass",
    "UploadPolicy",
    "SceneMode",
    "GameType",
    "FormatType",
    "BnetGameType",
    "get_bnet_game_type",
    "Settings",
    "get_settings",
    "verify_log_config",
    "LogConfigResult",
    "LogConfigState",
    "HsUploaderError",
    "InstallNotFoundError",
    "UploadError",
]
