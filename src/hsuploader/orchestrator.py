"""Ties log tailing, session detection and uploading together.

HearthstoneWatcher tails the Power log while the game runs, snapshots the
session metadata when a game starts, and uploads the game's log once it ends.
Session handlers run one at a time on a single worker thread, so the start
snapshot of a game always completes before its end is handled, and two
sessions are never processed at once.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union

from hsuploader.detector import ENTRY_POINT_MARKERS, SessionDetector, trim_session_log
from hsuploader.enums import SceneMode
from hsuploader.events import Signal
from hsuploader.loglines import ReaderConfig
from hsuploader.metadata import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    MetadataGenerator,
    StateInspector,
    UploadMetadata,
)
from hsuploader.client import UploadClient
from hsuploader.policy import UploadPolicy
from hsuploader.tailer import Tailer
from hsuploader.util import find_install_dir, get_hearthstone_build
from hsuploader.watchers import DeckWatcher, ProcessWatcher

logger = logging.getLogger(__name__)

POWER_LOG_NAME = "Power"
POWER_LOG_FILTERS = ("GameState.",)
POWER_LOG_READ_DELAY = 0.5

# Upload retries after the first failure; wait retry_delay * attempt between them
UPLOAD_RETRIES = 2
UPLOAD_RETRY_DELAY = 5.0


class WatcherState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class SessionStartedEvent:
    """A game started. ``mode`` is the last menu screen seen before it."""

    mode: Optional[SceneMode]
    game_handle: Optional[str]


@dataclass(frozen=True)
class SessionEndedEvent:
    """A game ended and its upload finished (or was skipped)."""

    upload_successful: bool
    game_handle: Optional[str]
    exception: Optional[BaseException] = None
    replay_url: Optional[str] = None
    eligible: bool = True


@dataclass(frozen=True)
class _Session:
    mode: Optional[SceneMode]
    metadata: UploadMetadata


def power_log_config(install_dir: str) -> ReaderConfig:
    """Reader configuration for the Power log of an install directory."""
    return ReaderConfig(
        file_path=os.path.join(install_dir, "Logs", "Power.log"),
        name=POWER_LOG_NAME,
        starts_with=POWER_LOG_FILTERS,
    )


class HearthstoneWatcher:
    """Watches Hearthstone games and uploads the eligible ones.

    Signals:
        session_started(SessionStartedEvent)
        session_ended(SessionEndedEvent)

    Example:
        watcher = HearthstoneWatcher(client, inspector, [SceneMode.FRIENDLY])
        watcher.session_ended.connect(lambda e: print(e.upload_successful))
        watcher.start()
    """

    def __init__(
        self,
        client: UploadClient,
        inspector: StateInspector,
        allowed: Union[UploadPolicy, Iterable[Any]],
        install_dir: Optional[str] = None,
        upload_retries: int = UPLOAD_RETRIES,
        retry_delay: float = UPLOAD_RETRY_DELAY,
        metadata_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
        metadata_retry_delay: float = DEFAULT_RETRY_DELAY,
        read_delay: float = POWER_LOG_READ_DELAY,
        process_watcher: Optional[ProcessWatcher] = None,
        deck_watcher: Optional[DeckWatcher] = None,
        sleep: Optional[Callable[[float], None]] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            client: Upload client for finished sessions.
            inspector: Live game state source.
            allowed: Upload policy, or the screens/game types eligible for upload.
            install_dir: Hearthstone install directory. Resolved from the running
                process on start() when not given.
            upload_retries: Extra upload attempts after the first failure.
            retry_delay: Base delay in seconds, multiplied by the attempt number.
            metadata_attempts: Inspector calls per metadata value; None never gives up.
            metadata_retry_delay: Seconds between inspector calls.
            read_delay: Poll delay of the log tailer.
            process_watcher: Process watcher to use instead of the default.
            deck_watcher: Deck watcher to use instead of the default.
            sleep: Sleep function for retry delays, replaceable for testing. By
                default retries wait on an event that stop() sets.
            log: Logger to use. Defaults to this module's logger.
        """
        self.client = client
        self.inspector = inspector
        self.policy = allowed if isinstance(allowed, UploadPolicy) else UploadPolicy(allowed)
        self.install_dir = install_dir
        self.upload_retries = upload_retries
        self.retry_delay = retry_delay
        self.read_delay = read_delay
        self._sleep = sleep
        self._log = log or logger
        # Set by stop() to cut upload retries short
        self._cancel = threading.Event()
        # Set by stop() or a game exit to cut a pending start snapshot short
        self._abandon_start = threading.Event()

        self.process_watcher = process_watcher or ProcessWatcher(log=self._log)
        self.deck_watcher = deck_watcher or DeckWatcher(inspector, log=self._log)
        self.metadata_generator = MetadataGenerator(
            inspector,
            max_attempts=metadata_attempts,
            retry_delay=metadata_retry_delay,
            sleep=sleep,
            cancel=self._abandon_start,
            log=self._log,
        )
        self.detector = SessionDetector(log=self._log)

        self.session_started = Signal("session_started", self._log)
        self.session_ended = Signal("session_ended", self._log)

        self.state = WatcherState.STOPPED
        self._tailer: Optional[Tailer] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._session: Optional[_Session] = None
        self._lock = threading.Lock()
        self._reader_lock = threading.Lock()

    @property
    def found_log(self) -> bool:
        return self.detector.found_log

    def start(self) -> None:
        """Start watching. Does nothing if already running.

        Raises:
            InstallNotFoundError: If no install directory was given and it could
                not be resolved from the running game.
        """
        with self._lock:
            if self.state == WatcherState.RUNNING:
                return

            if self.install_dir is None:
                self.install_dir = find_install_dir()

            self._cancel.clear()
            self._abandon_start.clear()
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hsuploader-session")
            self.detector.session_started.connect(self._on_session_start)
            self.detector.session_ended.connect(self._on_session_end)
            self.process_watcher.started.connect(self._start_log_reader)
            self.process_watcher.stopped.connect(self._stop_log_reader)

            self.process_watcher.run()
            self.deck_watcher.run()
            self.state = WatcherState.RUNNING
            self._log.info(f"Watching Hearthstone at {self.install_dir}")

    def stop(self) -> None:
        """Stop watching and wait for in-flight session handling to finish."""
        with self._lock:
            if self.state == WatcherState.STOPPED:
                return
            self.state = WatcherState.STOPPED
            self._cancel.set()
            self._abandon_start.set()

            self.process_watcher.stop()
            self.process_watcher.join()
            self.deck_watcher.stop()
            self._stop_log_reader()

            self.process_watcher.started.disconnect(self._start_log_reader)
            self.process_watcher.stopped.disconnect(self._stop_log_reader)
            self.detector.session_started.disconnect(self._on_session_start)
            self.detector.session_ended.disconnect(self._on_session_end)

            executor, self._executor = self._executor, None
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
            self._session = None
            self._log.info("Stopped watching Hearthstone")

    def _start_log_reader(self) -> None:
        with self._reader_lock:
            if self._tailer is not None or self.install_dir is None:
                return
            tailer = Tailer(power_log_config(self.install_dir), read_delay=self.read_delay, log=self._log)
            tailer.new_lines.connect(self.detector.process_lines)
            tailer.file_found.connect(self.detector.on_log_found)
            self.detector.reset_found()
            entry_point = tailer.find_entry_point(*ENTRY_POINT_MARKERS)
            tailer.start(entry_point)
            self._tailer = tailer

    def _stop_log_reader(self) -> None:
        with self._reader_lock:
            tailer, self._tailer = self._tailer, None
            if tailer is None:
                return
            tailer.stop()
            tailer.new_lines.disconnect(self.detector.process_lines)
            tailer.file_found.disconnect(self.detector.on_log_found)
            # The log is rotated on restart, so an open session can never end
            self.detector.reset()
        # Cut a pending start snapshot short; the exit handler re-arms it in order
        self._abandon_start.set()
        self._submit(self._handle_process_exit)

    def _on_session_start(self) -> None:
        self._submit(self._handle_session_start)

    def _on_session_end(self, lines: list[str]) -> None:
        self._submit(self._handle_session_end, lines)

    def _submit(self, handler: Callable[..., None], *args) -> None:
        executor = self._executor
        if executor is None:
            return
        try:
            executor.submit(self._run_handler, handler, *args)
        except RuntimeError as e:
            # Executor shut down between the check and the submit
            self._log.debug(f"Dropped {handler.__name__}: {e}")

    def _run_handler(self, handler: Callable[..., None], *args) -> None:
        try:
            handler(*args)
        except Exception as e:
            self._log.error(f"{handler.__name__} failed: {e}", exc_info=True)

    def _handle_session_start(self) -> None:
        deck = self.deck_watcher.selected_deck
        mode = self.deck_watcher.last_known_mode
        self.deck_watcher.stop()

        build = get_hearthstone_build(self.install_dir)
        metadata = self.metadata_generator.generate(deck, build)
        if self._abandon_start.is_set():
            self._log.info("Game start abandoned, game closed or watcher stopping")
            return
        self._session = _Session(mode=mode, metadata=metadata)

        self._log.info(f"Game started: mode={mode.name if mode else None}, handle={metadata.game_handle}")
        self.session_started.emit(SessionStartedEvent(mode=mode, game_handle=metadata.game_handle))

    def _handle_process_exit(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            self._log.warning(f"Game {session.metadata.game_handle} abandoned, game closed before it ended")
        if self.state == WatcherState.RUNNING:
            self._abandon_start.clear()
            self.deck_watcher.run()

    def _handle_session_end(self, lines: list[str]) -> None:
        session, self._session = self._session, None
        try:
            if session is None:
                self._log.warning("Game ended without a start snapshot, not uploading")
                self.session_ended.emit(SessionEndedEvent(False, None, eligible=False))
                return

            metadata = session.metadata
            if not self.policy.is_eligible(session.mode, metadata.game_type, metadata.spectator_mode):
                self._log.info(f"Game {metadata.game_handle} not eligible for upload")
                self.session_ended.emit(SessionEndedEvent(False, metadata.game_handle, eligible=False))
                return

            try:
                log_lines = trim_session_log(lines)
            except Exception as e:
                self._log.warning(f"Could not trim session log, uploading as is: {e}")
                log_lines = lines

            success, replay_url, error = self._upload(metadata, log_lines)
            self.session_ended.emit(SessionEndedEvent(
                upload_successful=success,
                game_handle=metadata.game_handle,
                exception=error,
                replay_url=replay_url,
            ))
        finally:
            if self.state == WatcherState.RUNNING:
                self.deck_watcher.run()

    def _upload(
        self, metadata: UploadMetadata, log_lines: list[str]
    ) -> tuple[bool, Optional[str], Optional[BaseException]]:
        """Upload with bounded retries.

        Returns:
            (success, replay url, last error). The error is None on success.
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.upload_retries + 2):
            try:
                replay_url = self.client.upload_session(metadata, log_lines)
                self._log.info(f"Uploaded game {metadata.game_handle}: {replay_url}")
                return True, replay_url, None
            except Exception as e:
                last_error = e
                self._log.warning(f"Upload attempt {attempt} failed: {e}")
                if attempt <= self.upload_retries and self._wait(self.retry_delay * attempt):
                    self._log.info(f"Upload of game {metadata.game_handle} cancelled")
                    return False, None, last_error
        self._log.error(f"Giving up on game {metadata.game_handle} after {self.upload_retries + 1} attempts")
        return False, None, last_error

    def _wait(self, delay: float) -> bool:
        """Wait between upload attempts. Returns True if stop() was requested."""
        if self._sleep is not None:
            self._sleep(delay)
            return self._cancel.is_set()
        return self._cancel.wait(delay)

    def __enter__(self) -> "HearthstoneWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
