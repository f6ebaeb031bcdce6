"""Incremental tailing of a Hearthstone log file.

The Tailer reads lines appended to one log file on a dedicated thread,
keeps an exact byte cursor, and only consumes lines that are completely
written. A watchdog observer on the log directory wakes the read loop as soon
as the file changes; plain polling every ``read_delay`` seconds is the
fallback when the directory cannot be watched.
"""

import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from hsuploader.events import Signal
from hsuploader.loglines import (
    DATA_LINE_PREFIX,
    LINE_START_MARKERS,
    MIN_TIMESTAMP,
    LogLine,
    ReaderConfig,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Backward scans read the file in blocks of this size
CHUNK_SIZE = 4096

_LINE_START_BYTES = tuple(m.encode("ascii") for m in LINE_START_MARKERS)


class _LogChangeHandler(FileSystemEventHandler):
    """Wakes the tail loop when the watched file is written or recreated."""

    def __init__(self, log_path: str, wake: threading.Event) -> None:
        super().__init__()
        self.log_path = Path(log_path).resolve()
        self._wake = wake

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        return Path(event.src_path).resolve() == self.log_path

    def on_modified(self, event: FileModifiedEvent) -> None:
        if self._matches(event):
            self._wake.set()

    def on_created(self, event: FileCreatedEvent) -> None:
        if self._matches(event):
            self._wake.set()


class Tailer:
    """Tails one log file and delivers filtered, complete lines.

    Signals:
        new_lines(list[LogLine]): a batch of filtered lines, in file order.
        file_found(str): the file was seen for the first time since start().
        ignored_line(str): a consumed line without the data-line marker.

    Example:
        tailer = Tailer(ReaderConfig("Logs/Power.log", "Power", starts_with=("GameState.",)))
        tailer.new_lines.connect(handle_lines)
        tailer.start(tailer.find_entry_point("tag=GOLD_REWARD_STATE"))
        ...
        tailer.stop()
    """

    def __init__(
        self,
        config: ReaderConfig,
        read_delay: float = 0.1,
        rotate: bool = True,
        use_watchdog: bool = True,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the tailer.

        Args:
            config: File path, source name and line filters.
            read_delay: Seconds to wait between polls when no data is available.
            rotate: Move the existing file to its backup path on start().
            use_watchdog: Wake early on filesystem events instead of only polling.
            log: Logger to use. Defaults to this module's logger.
        """
        self.config = config
        self.read_delay = read_delay
        self.rotate = rotate
        self.use_watchdog = use_watchdog
        self._log = log or logger

        self.new_lines = Signal("new_lines", self._log)
        self.file_found = Signal("file_found", self._log)
        self.ignored_line = Signal("ignored_line", self._log)

        self._offset: int = 0
        self._initial_timestamp: datetime = MIN_TIMESTAMP
        self._file_exists = False
        self._stop_event = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._observer: Optional[Observer] = None
        self._lifecycle_lock = threading.Lock()

    @property
    def offset(self) -> int:
        """Byte offset of the first unconsumed byte."""
        return self._offset

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, initial_timestamp: datetime = MIN_TIMESTAMP) -> None:
        """Start tailing on a background thread.

        Does nothing if already running.

        Args:
            initial_timestamp: Lines stamped earlier than this are never delivered,
                and reading starts at the offset of the first line at or after it.
        """
        with self._lifecycle_lock:
            if self._thread is not None:
                return

            if self.rotate:
                self._rotate_log()

            self._initial_timestamp = initial_timestamp
            self._offset = 0
            self._file_exists = False
            self._stop_event.clear()
            self._wake.clear()

            if self.use_watchdog:
                self._start_observer()

            self._thread = threading.Thread(
                target=self._run,
                name=f"tailer-{self.config.name}",
                daemon=True,
            )
            self._thread.start()
            self._log.info(f"Tailing {self.config.file_path} from {initial_timestamp}")

    def stop(self) -> None:
        """Stop tailing and wait for the read thread to exit.

        Once this returns no further new_lines are emitted. Safe to call
        multiple times.
        """
        with self._lifecycle_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            self._wake.set()
            if thread is not threading.current_thread():
                thread.join()
            self._thread = None
            self._stop_observer()
            self._log.info(f"Stopped tailing {self.config.file_path}")

    def _start_observer(self) -> None:
        watch_dir = Path(self.config.file_path).parent
        if not watch_dir.exists():
            self._log.warning(f"Watch directory does not exist, polling only: {watch_dir}")
            return
        observer = Observer()
        try:
            observer.schedule(
                _LogChangeHandler(self.config.file_path, self._wake),
                str(watch_dir),
                recursive=False,
            )
            observer.start()
        except OSError as e:
            self._log.warning(f"Could not watch {watch_dir}, polling only: {e}")
            return
        self._observer = observer

    def _stop_observer(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None

    def _rotate_log(self) -> None:
        """Move the current log out of the way so tailing starts on a fresh file.

        Renaming the file onto itself fails while the game holds it exclusively;
        in that case the file is deleted instead. Neither failure is fatal.
        """
        path = self.config.file_path
        if not os.path.exists(path):
            return

        try:
            os.rename(path, path)
            backup = self.config.backup_path
            if os.path.exists(backup):
                try:
                    os.remove(backup)
                except OSError as e:
                    self._log.debug(f"Could not remove old backup {backup}: {e}")
            os.replace(path, backup)
            self._log.info(f"Moved {path} to {backup}")
        except OSError as e:
            self._log.debug(f"Could not move {path} ({e}), deleting instead")
            try:
                os.remove(path)
                self._log.info(f"Deleted {path}")
            except OSError as e:
                self._log.warning(f"Could not rotate {path}, continuing with existing file: {e}")

    def _run(self) -> None:
        self._offset = self.find_initial_offset(self._initial_timestamp)
        self._log.debug(f"Initial offset for {self.config.name}: {self._offset}")

        while not self._stop_event.is_set():
            try:
                self._read_new_lines()
            except OSError as e:
                # File handle is reopened on the next pass
                self._log.debug(f"Error reading {self.config.file_path}: {e}")

            if self._stop_event.is_set():
                break
            self._wake.wait(self.read_delay)
            self._wake.clear()

    def _read_new_lines(self) -> None:
        """Run one read pass from the cursor to the end of the file."""
        path = self.config.file_path
        if not os.path.exists(path):
            return

        if not self._file_exists:
            self._file_exists = True
            self._log.info(f"Found log file: {path}")
            self.file_found.emit(self.config.name)

        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            size = f.tell()
            if size < self._offset:
                self._log.info(
                    f"{path} shrank (size {size} < offset {self._offset}), reading from start"
                )
                self._offset = 0
            if size == self._offset:
                return
            f.seek(self._offset)
            data = f.read(size - self._offset)

        lines, consumed = self._consume(data)
        self._offset += consumed
        if lines:
            self._log.debug(
                f"Delivering {len(lines)} {self.config.name} lines, offset {self._offset}"
            )
            self.new_lines.emit(lines)

    def _consume(self, data: bytes) -> tuple[list[LogLine], int]:
        """Split complete lines off the front of ``data``.

        Only newline-terminated lines are consumed. A data line followed by an
        unfinished fragment that does not start with a line marker is left for
        the next pass, since the writer is still in the middle of it.

        Returns:
            (lines to deliver, number of bytes consumed)
        """
        delivered: list[LogLine] = []
        pos = 0
        while True:
            newline = data.find(b"\n", pos)
            if newline == -1:
                break
            end = newline + 1
            raw = data[pos:newline]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            text = raw.decode("utf-8", errors="replace")

            if text.startswith(DATA_LINE_PREFIX):
                following = data[end:end + 1]
                if (
                    following
                    and not following.startswith(_LINE_START_BYTES)
                    and data.find(b"\n", end) == -1
                ):
                    break
                line = LogLine.parse(self.config.name, text)
                if self.config.matches(line) and line.timestamp >= self._initial_timestamp:
                    delivered.append(line)
            else:
                self.ignored_line.emit(text)

            pos = end
        return delivered, pos

    def _iter_lines_reversed(self, f: BinaryIO, size: int) -> Iterator[tuple[bytes, int]]:
        """Yield ``(raw_line, offset_after_line)`` from the end of the file backward.

        Reads CHUNK_SIZE blocks, so memory use does not depend on the file size.
        A trailing fragment without a newline is yielded first with offset ``size``.
        """
        pos = size
        carry = b""
        # Pretend the file ends with a newline so every element has a terminator
        carry_after = size + 1
        while pos > 0:
            read = min(CHUNK_SIZE, pos)
            pos -= read
            f.seek(pos)
            buf = f.read(read) + carry
            parts = buf.split(b"\n")
            after = carry_after
            for part in reversed(parts[1:]):
                yield part, min(after, size)
                after -= len(part) + 1
            carry = parts[0]
            carry_after = after
        if size > 0:
            yield carry, min(carry_after, size)

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.rstrip(b"\r").decode("utf-8", errors="replace").strip("\0")

    def find_initial_offset(self, cutoff: datetime) -> int:
        """Find where to start reading so only lines at or after ``cutoff`` are seen.

        Scans backward from the end of the file for the last line stamped
        strictly earlier than ``cutoff``. Blank and unstamped lines are skipped.

        Args:
            cutoff: Earliest timestamp of interest.

        Returns:
            Byte offset just past that line, or 0 if there is none.
        """
        path = self.config.file_path
        if not os.path.exists(path):
            return 0

        try:
            with open(path, "rb") as f:
                f.seek(0, os.SEEK_END)
                size = f.tell()
                for raw, after in self._iter_lines_reversed(f, size):
                    text = self._decode(raw)
                    if not text.strip():
                        continue
                    timestamp = parse_timestamp(text)
                    if timestamp == MIN_TIMESTAMP:
                        continue
                    if timestamp < cutoff:
                        return after
        except OSError as e:
            self._log.warning(f"Error scanning {path} for initial offset: {e}")
        return 0

    def find_entry_point(self, *markers: str) -> datetime:
        """Timestamp of the last line containing any of ``markers``.

        Used on startup so a session that already finished before this process
        started is not picked up again.

        Args:
            *markers: Substrings marking the end of a previous session.

        Returns:
            The line's timestamp, or ``MIN_TIMESTAMP`` if no line matches.
        """
        path = self.config.file_path
        if not markers or not os.path.exists(path):
            return MIN_TIMESTAMP

        try:
            with open(path, "rb") as f:
                f.seek(0, os.SEEK_END)
                size = f.tell()
                for raw, _ in self._iter_lines_reversed(f, size):
                    text = self._decode(raw)
                    if any(marker in text for marker in markers):
                        timestamp = parse_timestamp(text)
                        self._log.debug(f"Entry point {timestamp} from: {text}")
                        return timestamp
        except OSError as e:
            self._log.warning(f"Error scanning {path} for entry point: {e}")
        return MIN_TIMESTAMP

    def __enter__(self) -> "Tailer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
