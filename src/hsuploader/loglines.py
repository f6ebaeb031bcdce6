"""Log line model and reader configuration for Hearthstone log files.

Each physical line of a Hearthstone log looks like::

    D 21:14:03.1234567 GameState.DebugPrintPower() - CREATE_GAME

A one-character marker (``D`` data, ``W`` warning), a 16 character
time-of-day stamp and the actual content.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

DATA_LINE_PREFIX = "D "
# Characters a complete physical line may begin with
LINE_START_MARKERS = ("D", "W")

TIMESTAMP_START = 2
TIMESTAMP_END = 18
CONTENT_START = 19

MIN_TIMESTAMP = datetime.min


def parse_timestamp(raw: str, now: Optional[datetime] = None) -> datetime:
    """Parse the time-of-day prefix of a raw log line.

    The log only records a time of day, so it is anchored to today's date and
    moved back one day when that would place it in the future.

    Args:
        raw: Raw line text including the marker prefix.
        now: Reference "current" time. Defaults to ``datetime.now()``.

    Returns:
        The absolute timestamp, or ``MIN_TIMESTAMP`` if the prefix does not parse.
    """
    stamp = raw[TIMESTAMP_START:TIMESTAMP_END].strip()
    if not stamp:
        return MIN_TIMESTAMP

    hms, _, fraction = stamp.partition(".")
    # strptime only handles microseconds, the log writes 7 fractional digits
    try:
        time_of_day = datetime.strptime(f"{hms}.{(fraction or '0')[:6]}", "%H:%M:%S.%f").time()
    except ValueError:
        return MIN_TIMESTAMP

    now = now or datetime.now()
    timestamp = datetime.combine(now.date(), time_of_day)
    if timestamp > now:
        timestamp -= timedelta(days=1)
    return timestamp


@dataclass(frozen=True)
class LogLine:
    """A single line read from a log file."""

    source: str
    raw: str
    timestamp: datetime = MIN_TIMESTAMP

    @classmethod
    def parse(cls, source: str, raw: str, now: Optional[datetime] = None) -> "LogLine":
        """Build a LogLine, parsing its timestamp. Never raises."""
        return cls(source=source, raw=raw, timestamp=parse_timestamp(raw, now))

    @property
    def content(self) -> str:
        """Line text after the marker and timestamp."""
        return self.raw[CONTENT_START:]

    @property
    def is_data_line(self) -> bool:
        return self.raw.startswith(DATA_LINE_PREFIX)


@dataclass(frozen=True)
class ReaderConfig:
    """Which file to tail and which of its lines to deliver.

    A line passes if it starts with any ``starts_with`` filter OR contains any
    ``contains`` filter. With no filters at all, every line passes.
    """

    file_path: str
    name: str
    starts_with: tuple[str, ...] = field(default_factory=tuple)
    contains: tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_filters(self) -> bool:
        return bool(self.starts_with or self.contains)

    @property
    def backup_path(self) -> str:
        """Path the previous log is moved to on rotation."""
        base, ext = os.path.splitext(self.file_path)
        return f"{base}_old{ext}"

    def matches(self, line: LogLine) -> bool:
        if not self.has_filters:
            return True
        content = line.content
        return any(content.startswith(f) for f in self.starts_with) or any(
            f in content for f in self.contains
        )
