"""Tests for the Power log tailer.

Covers the backward scans used on startup and the live read loop: byte-exact
cursor bookkeeping, partial line handling, filtering and rotation.
"""

import os
import threading
import time

import pytest

from conftest import power_line, timestamp_at, wait_for, write_lines
from hsuploader.loglines import MIN_TIMESTAMP, LogLine, ReaderConfig, parse_timestamp
from hsuploader.tailer import CHUNK_SIZE, Tailer


def make_tailer(path, **kwargs) -> Tailer:
    config = kwargs.pop("config", None) or ReaderConfig(str(path), "Power")
    kwargs.setdefault("read_delay", 0.01)
    kwargs.setdefault("rotate", False)
    kwargs.setdefault("use_watchdog", False)
    return Tailer(config, **kwargs)


def byte_len(lines) -> int:
    return sum(len((line + "\n").encode("utf-8")) for line in lines)


class BatchCollector:
    """Collects new_lines batches from a tailer."""

    def __init__(self):
        self.batches = []
        self._lock = threading.Lock()

    def __call__(self, lines):
        with self._lock:
            self.batches.append(lines)

    @property
    def raws(self):
        with self._lock:
            return [line.raw for batch in self.batches for line in batch]


class TestLogLine:
    """Tests for log line parsing."""

    def test_timestamp_parsed_from_prefix(self):
        line = LogLine.parse("Power", power_line(5, "CREATE_GAME"))
        assert line.timestamp == timestamp_at(5)
        assert line.content.startswith("GameState.")
        assert line.is_data_line

    def test_unparsable_timestamp_is_minimum(self):
        assert parse_timestamp("garbage") == MIN_TIMESTAMP
        assert parse_timestamp("") == MIN_TIMESTAMP
        assert parse_timestamp("D xx:yy:zz.0000000 foo") == MIN_TIMESTAMP

    def test_seven_fraction_digits_truncated(self):
        ts = parse_timestamp("D 00:00:01.1234567 x")
        assert ts.microsecond == 123456

    def test_future_time_of_day_moves_to_previous_day(self):
        from datetime import datetime

        now = datetime(2024, 5, 2, 0, 30)
        ts = parse_timestamp("D 23:59:00.0000000 x", now=now)
        assert ts == datetime(2024, 5, 1, 23, 59)

    def test_filters(self):
        config = ReaderConfig("x.log", "Power", starts_with=("GameState.",), contains=("TAG",))
        assert config.matches(LogLine.parse("Power", power_line(0, "anything")))
        assert config.matches(LogLine.parse("Power", f"D {'00:00:00.0000000'} Other TAG here"))
        assert not config.matches(LogLine.parse("Power", "D 00:00:00.0000000 Other line"))

    def test_no_filters_accept_everything(self):
        config = ReaderConfig("x.log", "Power")
        assert config.matches(LogLine.parse("Power", "D 00:00:00.0000000 whatever"))

    def test_backup_path(self):
        assert ReaderConfig("/logs/Power.log", "Power").backup_path == "/logs/Power_old.log"


class TestFindInitialOffset:
    """Tests for the backward scan to the cutoff timestamp."""

    def test_missing_file_returns_zero(self, log_path):
        assert make_tailer(log_path).find_initial_offset(timestamp_at(10)) == 0

    def test_offset_after_last_earlier_line(self, log_path):
        lines = [power_line(t, f"line {t}") for t in (10, 20, 30, 40)]
        write_lines(log_path, lines)
        tailer = make_tailer(log_path)

        assert tailer.find_initial_offset(timestamp_at(25)) == byte_len(lines[:2])
        # Equal timestamps are not "earlier", so reading includes them
        assert tailer.find_initial_offset(timestamp_at(30)) == byte_len(lines[:2])

    def test_cutoff_before_everything_reads_from_start(self, log_path):
        write_lines(log_path, [power_line(t, "x") for t in (10, 20)])
        assert make_tailer(log_path).find_initial_offset(timestamp_at(5)) == 0

    def test_cutoff_after_everything_reads_from_end(self, log_path):
        write_lines(log_path, [power_line(t, "x") for t in (10, 20)])
        assert make_tailer(log_path).find_initial_offset(timestamp_at(50)) == os.path.getsize(log_path)

    def test_minimum_cutoff_reads_from_start(self, log_path):
        write_lines(log_path, [power_line(t, "x") for t in (10, 20)])
        assert make_tailer(log_path).find_initial_offset(MIN_TIMESTAMP) == 0

    def test_spans_many_chunks_with_multibyte_text(self, log_path):
        lines = [power_line(i, f"entity=Zoë ★ {i} " + "x" * (i % 50)) for i in range(600)]
        write_lines(log_path, lines)
        assert os.path.getsize(log_path) > 4 * CHUNK_SIZE

        tailer = make_tailer(log_path)
        for cutoff in (1, 137, 300, 599):
            offset = tailer.find_initial_offset(timestamp_at(cutoff))
            assert offset == byte_len(lines[:cutoff])
            with open(log_path, "rb") as f:
                f.seek(offset)
                first = f.readline().decode("utf-8").rstrip("\n")
            assert first == lines[cutoff]

    def test_crlf_line_endings(self, log_path):
        lines = [power_line(t, "x") for t in (10, 20, 30)]
        write_lines(log_path, lines, newline="\r\n")
        offset = make_tailer(log_path).find_initial_offset(timestamp_at(25))
        assert offset == sum(len(line) + 2 for line in lines[:2])

    def test_unstamped_lines_are_skipped(self, log_path):
        lines = [power_line(10, "a"), power_line(20, "b"), "Some diagnostic output"]
        write_lines(log_path, lines)
        offset = make_tailer(log_path).find_initial_offset(timestamp_at(15))
        assert offset == byte_len(lines[:1])


class TestFindEntryPoint:
    """Tests for the backward scan for previous-session markers."""

    def test_last_marker_line_wins(self, log_path):
        write_lines(log_path, [
            power_line(10, "TAG_CHANGE tag=GOLD_REWARD_STATE value=1"),
            power_line(20, "CREATE_GAME"),
            power_line(30, "End Spectator"),
            power_line(40, "something else"),
        ])
        tailer = make_tailer(log_path)
        assert tailer.find_entry_point("tag=GOLD_REWARD_STATE", "End Spectator") == timestamp_at(30)

    def test_no_marker_returns_minimum(self, log_path):
        write_lines(log_path, [power_line(10, "a"), power_line(20, "b")])
        assert make_tailer(log_path).find_entry_point("tag=GOLD_REWARD_STATE") == MIN_TIMESTAMP

    def test_missing_file_returns_minimum(self, log_path):
        assert make_tailer(log_path).find_entry_point("x") == MIN_TIMESTAMP

    def test_marker_far_from_end(self, log_path):
        lines = [power_line(5, "tag=GOLD_REWARD_STATE value=1")]
        lines += [power_line(10 + i, "filler " * 10) for i in range(400)]
        write_lines(log_path, lines)
        assert make_tailer(log_path).find_entry_point("tag=GOLD_REWARD_STATE") == timestamp_at(5)


class TestTailLoop:
    """Tests for the live read loop."""

    def test_delivers_appended_lines_and_tracks_offset(self, log_path):
        write_lines(log_path, [power_line(1, "first")])
        collector = BatchCollector()
        tailer = make_tailer(log_path)
        tailer.new_lines.connect(collector)

        with tailer:
            assert wait_for(lambda: len(collector.raws) == 1)
            more = [power_line(2, "second"), power_line(3, "third ✓")]
            write_lines(log_path, more)
            assert wait_for(lambda: len(collector.raws) == 3)
            assert wait_for(lambda: tailer.offset == os.path.getsize(log_path))

        assert collector.raws == [power_line(1, "first")] + more

    def test_partial_line_not_consumed(self, log_path):
        log_path.write_text("")
        collector = BatchCollector()
        tailer = make_tailer(log_path)
        tailer.new_lines.connect(collector)
        complete = power_line(1, "complete")
        partial = power_line(2, "partial")

        with tailer:
            with open(log_path, "a", encoding="utf-8", newline="") as f:
                f.write(complete + "\n" + partial[:20])
            assert wait_for(lambda: len(collector.raws) == 1)
            time.sleep(0.1)
            assert collector.raws == [complete]
            assert tailer.offset == byte_len([complete])

            with open(log_path, "a", encoding="utf-8", newline="") as f:
                f.write(partial[20:] + "\n")
            assert wait_for(lambda: len(collector.raws) == 2)

        assert collector.raws == [complete, partial]
        assert tailer.offset == os.path.getsize(log_path)

    def test_filtered_and_ignored_lines_advance_cursor(self, log_path):
        config = ReaderConfig(str(log_path), "Power", starts_with=("GameState.",))
        collector = BatchCollector()
        ignored = []
        tailer = make_tailer(log_path, config=config)
        tailer.new_lines.connect(collector)
        tailer.ignored_line.connect(ignored.append)

        lines = [
            "W 00:00:00.0000000 Warning about something",
            f"D {power_line(1, '')[2:18]} PowerTaskList.DebugPrintPower() - filtered out",
            power_line(2, "kept"),
        ]
        write_lines(log_path, lines)

        with tailer:
            assert wait_for(lambda: len(collector.raws) == 1)
            assert wait_for(lambda: tailer.offset == os.path.getsize(log_path))

        assert collector.raws == [power_line(2, "kept")]
        assert ignored == [lines[0]]
        assert tailer.offset == byte_len(lines)

    def test_lines_before_initial_timestamp_not_delivered(self, log_path):
        lines = [power_line(t, f"line {t}") for t in (10, 20, 30, 40)]
        write_lines(log_path, lines)
        collector = BatchCollector()
        tailer = make_tailer(log_path)
        tailer.new_lines.connect(collector)

        tailer.start(timestamp_at(30))
        try:
            assert wait_for(lambda: len(collector.raws) == 2)
        finally:
            tailer.stop()

        assert collector.raws == lines[2:]

    def test_file_found_fires_once_when_file_appears(self, log_path):
        found = []
        collector = BatchCollector()
        tailer = make_tailer(log_path)
        tailer.file_found.connect(found.append)
        tailer.new_lines.connect(collector)

        with tailer:
            time.sleep(0.05)
            assert found == []
            write_lines(log_path, [power_line(1, "hello")])
            assert wait_for(lambda: len(collector.raws) == 1)
            write_lines(log_path, [power_line(2, "again")])
            assert wait_for(lambda: len(collector.raws) == 2)

        assert found == ["Power"]

    def test_watchdog_wakes_loop(self, log_path):
        log_path.write_text("")
        collector = BatchCollector()
        tailer = make_tailer(log_path, use_watchdog=True, read_delay=5.0)
        tailer.new_lines.connect(collector)

        with tailer:
            time.sleep(0.1)
            write_lines(log_path, [power_line(1, "woken")])
            assert wait_for(lambda: len(collector.raws) == 1, timeout=4.0)

    def test_handler_error_does_not_stop_loop(self, log_path):
        collector = BatchCollector()
        tailer = make_tailer(log_path)

        def broken(lines):
            raise RuntimeError("boom")

        tailer.new_lines.connect(broken)
        tailer.new_lines.connect(collector)

        with tailer:
            write_lines(log_path, [power_line(1, "a")])
            assert wait_for(lambda: len(collector.raws) == 1)
            write_lines(log_path, [power_line(2, "b")])
            assert wait_for(lambda: len(collector.raws) == 2)

    def test_no_delivery_after_stop(self, log_path):
        collector = BatchCollector()
        tailer = make_tailer(log_path)
        tailer.new_lines.connect(collector)

        tailer.start()
        write_lines(log_path, [power_line(1, "a")])
        assert wait_for(lambda: len(collector.raws) == 1)
        tailer.stop()
        tailer.stop()
        assert not tailer.is_running

        write_lines(log_path, [power_line(2, "b")])
        time.sleep(0.1)
        assert len(collector.raws) == 1

    def test_start_twice_is_noop(self, log_path):
        tailer = make_tailer(log_path)
        tailer.start()
        try:
            thread = tailer._thread
            tailer.start()
            assert tailer._thread is thread
        finally:
            tailer.stop()


class TestRotation:
    """Tests for moving the previous log out of the way on start."""

    def test_existing_log_moved_to_backup(self, tmp_path):
        path = tmp_path / "Power.log"
        backup = tmp_path / "Power_old.log"
        backup.write_text("older backup\n")
        write_lines(path, [power_line(1, "previous run")])

        tailer = make_tailer(path, rotate=True)
        tailer.start()
        tailer.stop()

        assert not path.exists()
        assert backup.read_text(encoding="utf-8") == power_line(1, "previous run") + "\n"

    def test_missing_log_is_fine(self, tmp_path):
        tailer = make_tailer(tmp_path / "Power.log", rotate=True)
        tailer.start()
        tailer.stop()
        assert not (tmp_path / "Power_old.log").exists()

    def test_failed_move_falls_back_to_delete(self, tmp_path, monkeypatch):
        path = tmp_path / "Power.log"
        write_lines(path, [power_line(1, "locked")])

        def locked_rename(src, dst):
            raise PermissionError("locked")

        monkeypatch.setattr(os, "rename", locked_rename)
        tailer = make_tailer(path, rotate=True)
        tailer._rotate_log()

        assert not path.exists()
        assert not (tmp_path / "Power_old.log").exists()

    def test_failed_delete_is_not_fatal(self, tmp_path, monkeypatch):
        path = tmp_path / "Power.log"
        write_lines(path, [power_line(1, "locked")])

        def locked(*args):
            raise PermissionError("locked")

        monkeypatch.setattr(os, "rename", locked)
        monkeypatch.setattr(os, "remove", locked)
        make_tailer(path, rotate=True)._rotate_log()

        assert path.exists()
