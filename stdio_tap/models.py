"""Log record model and its on-disk line format."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Direction(Enum):
    INPUT = "in: "
    OUTPUT = "out:"
    ERROR = "err:"
    CONTROL = "---"

    @property
    def label(self) -> bytes:
        return self.value.encode("ascii")

    @property
    def marker(self) -> bytes:
        """Label plus separator, as it appears at the start of a labeled payload."""
        return self.value.rstrip().encode("ascii") + b" "


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-05-15T14:25:03.120Z."""
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class LogRecord:
    direction: Direction
    payload: bytes
    timestamp: datetime = field(default_factory=utc_now)

    def to_line(self) -> bytes:
        """Serialize as ``<timestamp> <label> <payload>\\n``.

        Output and error payloads that already start with their own label are
        written without a second one. The line always ends with a newline.
        """
        head = format_timestamp(self.timestamp).encode("ascii") + b" "
        if self.direction in (Direction.OUTPUT, Direction.ERROR) and \
                self.payload.startswith(self.direction.marker):
            line = head + self.payload
        else:
            line = head + self.direction.label + b" " + self.payload
        if not line.endswith(b"\n"):
            line += b"\n"
        return line


def control_record(message: str) -> LogRecord:
    return LogRecord(Direction.CONTROL, message.encode("utf-8", errors="replace"))
