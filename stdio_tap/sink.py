"""Thread-safe, durable, append-only log sink."""

import logging
import os
import threading
from datetime import datetime

from stdio_tap.models import LogRecord, utc_now

logger = logging.getLogger(__name__)


def new_log_path(log_dir: str, prefix: str = "stdio",
                 started_at: datetime | None = None) -> str:
    """Create and return a fresh ``<prefix>-<UTC timestamp>.log`` file in log_dir.

    The file is created exclusively, so a name taken by another run (even one
    racing this call) gets a numeric suffix and two runs never share a file.
    """
    started_at = started_at or utc_now()
    stamp = started_at.strftime("%Y-%m-%d_%H%M%S_") + f"{started_at.microsecond:06d}"
    base = os.path.join(log_dir, f"{prefix}-{stamp}")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    path = base + ".log"
    n = 1
    while True:
        try:
            with open(path, "xb"):
                return path
        except FileExistsError:
            path = f"{base}-{n}.log"
            n += 1


class LogSink:
    """Append-only file writer shared by the forwarders.

    Every append is written, flushed and (optionally) fsynced while holding the
    lock, so records from concurrent callers never interleave.
    """

    def __init__(self, path: str, fsync: bool = True):
        self.path = path
        self._fsync = fsync
        self._lock = threading.Lock()
        self.failed_writes = 0
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._file = open(path, "ab")

    def append(self, record: LogRecord) -> bool:
        """Write one record. Returns False if the write failed or the sink is closed."""
        line = record.to_line()
        with self._lock:
            if self._file is None:
                return False
            try:
                self._write(line)
            except (OSError, ValueError) as e:
                self.failed_writes += 1
                logger.warning("Error writing to log file %s: %s", self.path, e)
                return False
        return True

    def _write(self, line: bytes):
        self._file.write(line)
        self._file.flush()
        if self._fsync:
            os.fsync(self._file.fileno())

    @property
    def closed(self) -> bool:
        return self._file is None

    def close(self):
        with self._lock:
            if self._file is None:
                return
            try:
                self._file.close()
            except OSError as e:
                logger.warning("Error closing log file %s: %s", self.path, e)
            self._file = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
