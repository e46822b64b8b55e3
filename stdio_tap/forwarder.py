"""Copy loops between the wrapper's standard streams and the child's pipes.

Each loop runs in its own thread, owns the pipe it reads or writes, and
reports its own I/O failures without affecting the other loops.
"""

import logging
import os
import threading

from stdio_tap.models import Direction, LogRecord, control_record
from stdio_tap.sink import LogSink

logger = logging.getLogger(__name__)

STDIN_CLOSED_MESSAGE = "stdin stream closed to child"


class RawInput:
    """Unbuffered reader over a file descriptor.

    The stdin forwarder may still be parked in a read when the wrapper exits.
    Reading the descriptor directly keeps that thread from holding the lock of
    ``sys.stdin.buffer``, which the interpreter needs at shutdown.
    """

    def __init__(self, fd: int):
        self.fd = fd

    def read1(self, n: int) -> bytes:
        return os.read(self.fd, n)

    read = read1


def forward_stdin(source, target, sink: LogSink, chunk_size: int = 4096,
                  stop_event: threading.Event | None = None) -> int:
    """Copy the wrapper's input to the child's stdin pipe, logging each chunk first.

    Uses a short read when the source supports it so interactive input is not
    held back waiting for a full chunk. Returns the number of bytes forwarded.
    """
    read = getattr(source, "read1", None) or source.read
    forwarded = 0
    try:
        while stop_event is None or not stop_event.is_set():
            try:
                chunk = read(chunk_size)
            except (OSError, ValueError) as e:
                logger.warning("STDIN forwarding error: %s", e)
                break
            if not chunk:
                break

            sink.append(LogRecord(Direction.INPUT, chunk))
            try:
                target.write(chunk)
                target.flush()
            except (OSError, ValueError) as e:
                logger.warning("Error writing to child stdin: %s", e)
                sink.append(control_record(f"!!! child stdin write failed: {e}"))
                break
            forwarded += len(chunk)
    finally:
        try:
            target.close()
        except OSError as e:
            logger.warning("Error closing child stdin: %s", e)
        sink.append(control_record(STDIN_CLOSED_MESSAGE))
    return forwarded


def forward_output(source, target, sink: LogSink, direction: Direction,
                   max_line_bytes: int = 64 * 1024) -> int:
    """Copy a child pipe to the wrapper's stream line by line, logging each line.

    A line longer than ``max_line_bytes`` without a newline is emitted in
    pieces of that size. The forwarded bytes are never altered; only the log
    copy carries the label. Returns the number of bytes forwarded.
    """
    forwarded = 0
    try:
        while True:
            try:
                chunk = source.readline(max_line_bytes)
            except (OSError, ValueError) as e:
                logger.warning("%s forwarding error: %s", direction.name, e)
                break
            if not chunk:
                break

            sink.append(LogRecord(direction, chunk))
            try:
                target.write(chunk)
                target.flush()
            except (OSError, ValueError) as e:
                logger.warning("Error writing child %s to wrapper: %s",
                               direction.name.lower(), e)
                break
            forwarded += len(chunk)
    finally:
        try:
            source.close()
        except OSError as e:
            logger.debug("Error closing child %s pipe: %s", direction.name.lower(), e)
    return forwarded
