"""Session boundary detection over the Power log line stream."""

import logging
from enum import Enum
from typing import Optional

from hsuploader.events import Signal
from hsuploader.loglines import LogLine

logger = logging.getLogger(__name__)

# Substrings marking session boundaries in Power.log
SESSION_BEGIN_MARKER = "CREATE_GAME"
SESSION_END_MARKER = "tag=STATE value=COMPLETE"
# Terminal lines of an earlier session, used to compute the resume cutoff
ENTRY_POINT_MARKERS = ("tag=GOLD_REWARD_STATE", "End Spectator")


class SessionState(Enum):
    IN_MENU = "InMenu"
    PLAYING = "Playing"


class SessionDetector:
    """Turns batches of filtered log lines into session start/end events.

    Batches are processed one at a time, in delivery order. Within a batch a
    begin marker clears the buffer and fires session_started immediately,
    while an end marker only records that session_ended must fire. The batch
    lines from the begin marker on (or all of them, if no session began in
    the batch) are then appended to the buffer, and finally session_ended
    fires with the buffer as it stands. Lines following the end marker in the
    same batch are therefore part of the finished session's buffer. If the
    next session begins later in that same batch, the finished session is
    handed over first, with the lines up to the new begin marker.

    Signals:
        session_started(): a begin marker was seen while in the menu.
        session_ended(list[str]): the end marker was seen while playing; carries
            a copy of the raw session lines.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger
        self.state = SessionState.IN_MENU
        self.found_log = False
        self._buffer: list[str] = []

        self.session_started = Signal("session_started", self._log)
        self.session_ended = Signal("session_ended", self._log)

    @property
    def buffer(self) -> list[str]:
        """Copy of the lines buffered for the current or last session."""
        return list(self._buffer)

    def on_log_found(self, name: str = "") -> None:
        """Latch ``found_log``; connected to the tailer's file_found signal."""
        self.found_log = True

    def reset_found(self) -> None:
        """Clear the ``found_log`` latch before the tailer restarts."""
        self.found_log = False

    def reset(self) -> None:
        """Return to the menu and drop buffered lines.

        Called when the log source goes away mid-session: the end marker of
        that session will never arrive.
        """
        if self.state == SessionState.PLAYING:
            self._log.info(f"Session abandoned ({len(self._buffer)} lines dropped)")
        self.state = SessionState.IN_MENU
        self._buffer.clear()

    def process_lines(self, lines: list[LogLine]) -> None:
        """Advance the state machine over one delivered batch."""
        raw_lines = [line.raw for line in lines]
        ended = False
        # Lines of this batch before a begin marker belong to the menu, not the session
        keep_from = 0

        for index, raw in enumerate(raw_lines):
            if self.state == SessionState.IN_MENU and SESSION_BEGIN_MARKER in raw:
                if ended:
                    # A session ended earlier in this batch; hand it over before the next starts
                    self._buffer.extend(raw_lines[keep_from:index])
                    self._emit_ended()
                    ended = False
                self._buffer.clear()
                keep_from = index
                self.state = SessionState.PLAYING
                self._log.info("Session started")
                self.session_started.emit()
            elif self.state == SessionState.PLAYING and SESSION_END_MARKER in raw:
                self.state = SessionState.IN_MENU
                ended = True

        self._buffer.extend(raw_lines[keep_from:])

        if ended:
            self._emit_ended()

    def _emit_ended(self) -> None:
        self._log.info(f"Session ended ({len(self._buffer)} lines)")
        self.session_ended.emit(list(self._buffer))


def trim_session_log(lines: list[str]) -> list[str]:
    """Cut everything before the last session begin marker.

    Guards against a buffer that spans more than one session after a missed
    transition. If there is no begin marker the lines are returned unchanged.
    """
    for index in range(len(lines) - 1, -1, -1):
        if SESSION_BEGIN_MARKER in lines[index]:
            return lines[index:]
    return list(lines)
