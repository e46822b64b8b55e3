"""Tests for the log sink module."""

import os
import re
import threading
from datetime import datetime, timezone

from stdio_tap.models import Direction, LogRecord, control_record
from stdio_tap.sink import LogSink, new_log_path

STARTED = datetime(2025, 5, 15, 14, 25, 3, 120456, tzinfo=timezone.utc)


class TestNewLogPath:
    def test_name_embeds_utc_timestamp(self, tmp_path):
        path = new_log_path(str(tmp_path), "stdio", STARTED)
        assert os.path.dirname(path) == str(tmp_path)
        assert os.path.basename(path) == "stdio-2025-05-15_142503_120456.log"

    def test_default_name_format(self, tmp_path):
        name = os.path.basename(new_log_path(str(tmp_path)))
        assert re.match(r"^stdio-\d{4}-\d{2}-\d{2}_\d{6}_\d{6}\.log$", name)

    def test_taken_name_gets_suffix(self, tmp_path):
        first = new_log_path(str(tmp_path), "stdio", STARTED)
        second = new_log_path(str(tmp_path), "stdio", STARTED)
        assert second != first
        assert second.endswith("-1.log")
        assert new_log_path(str(tmp_path), "stdio", STARTED).endswith("-2.log")

    def test_file_created_empty(self, tmp_path):
        path = new_log_path(str(tmp_path / "logs"), "stdio", STARTED)
        assert os.path.isfile(path)
        assert os.path.getsize(path) == 0

    def test_existing_file_left_untouched(self, tmp_path):
        taken = tmp_path / "stdio-2025-05-15_142503_120456.log"
        taken.write_bytes(b"other run\n")
        path = new_log_path(str(tmp_path), "stdio", STARTED)
        assert path != str(taken)
        assert taken.read_bytes() == b"other run\n"

    def test_concurrent_callers_get_distinct_files(self, tmp_path):
        paths = []
        barrier = threading.Barrier(8)

        def claim():
            barrier.wait()
            paths.append(new_log_path(str(tmp_path), "stdio", STARTED))

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(paths)) == 8
        assert len(os.listdir(tmp_path)) == 8


class TestDirectoryCreation:
    def test_creates_directory_and_file(self, tmp_path):
        path = str(tmp_path / "newdir" / "subdir" / "s.log")
        sink = LogSink(path, fsync=False)
        assert os.path.isfile(path)
        sink.close()

    def test_appends_to_existing_file(self, tmp_path):
        path = tmp_path / "s.log"
        path.write_bytes(b"earlier session\n")
        with LogSink(str(path)) as sink:
            sink.append(control_record("second session"))
        lines = path.read_bytes().splitlines()
        assert lines[0] == b"earlier session"
        assert lines[1].endswith(b"--- second session")


class TestAppend:
    def test_append_returns_true(self, tmp_path):
        sink = LogSink(str(tmp_path / "s.log"))
        assert sink.append(LogRecord(Direction.INPUT, b"hello")) is True
        sink.close()

    def test_record_visible_before_close(self, tmp_path):
        path = tmp_path / "s.log"
        sink = LogSink(str(path))
        sink.append(LogRecord(Direction.OUTPUT, b"durable\n"))
        assert path.read_bytes().endswith(b"out: durable\n")
        sink.close()

    def test_multiple_records_in_order(self, tmp_path):
        path = tmp_path / "s.log"
        with LogSink(str(path), fsync=False) as sink:
            sink.append(LogRecord(Direction.INPUT, b"one"))
            sink.append(LogRecord(Direction.OUTPUT, b"two\n"))
            sink.append(LogRecord(Direction.ERROR, b"three"))
        lines = path.read_bytes().splitlines()
        assert len(lines) == 3
        assert lines[0].endswith(b"in:  one")
        assert lines[1].endswith(b"out: two")
        assert lines[2].endswith(b"err: three")

    def test_append_after_close_returns_false(self, tmp_path):
        sink = LogSink(str(tmp_path / "s.log"))
        sink.close()
        assert sink.closed
        assert sink.append(control_record("late")) is False

    def test_close_twice_is_safe(self, tmp_path):
        sink = LogSink(str(tmp_path / "s.log"))
        sink.close()
        sink.close()


class FailingFile:
    def write(self, data):
        raise OSError(28, "No space left on device")

    def flush(self):
        pass

    def close(self):
        pass


class TestWriteFailure:
    def test_failure_is_reported_not_raised(self, tmp_path, caplog):
        sink = LogSink(str(tmp_path / "s.log"), fsync=False)
        sink._file.close()
        sink._file = FailingFile()
        assert sink.append(LogRecord(Direction.OUTPUT, b"lost\n")) is False
        assert sink.failed_writes == 1
        assert "No space left on device" in caplog.text
        sink.close()


class TestConcurrentAppends:
    def test_no_interleaved_records(self, tmp_path):
        """5 threads x 100 records = 500 intact lines."""
        path = tmp_path / "concurrent.log"
        sink = LogSink(str(path), fsync=False)
        errors = []

        def writer(thread_id):
            for i in range(100):
                try:
                    payload = f"thread-{thread_id}-msg-{i}-".encode() + b"x" * 200
                    sink.append(LogRecord(Direction.OUTPUT, payload))
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        sink.close()

        assert errors == []
        lines = path.read_bytes().splitlines()
        assert len(lines) == 500
        for line in lines:
            assert re.match(rb"^\S+Z out: thread-\d-msg-\d+-x{200}$", line)
