"""Log entry model and the formatter that stamps lines at read time."""

import datetime
import threading
import time
from dataclasses import dataclass
from typing import Optional

from lokitee.labels import LabelSet


@dataclass(frozen=True)
class LogEntry:
    labels: LabelSet
    timestamp_ns: int
    line: str

    @property
    def timestamp(self) -> datetime.datetime:
        """Capture instant as an aware UTC datetime (microsecond precision)."""
        seconds, nanos = divmod(self.timestamp_ns, 1_000_000_000)
        return datetime.datetime.fromtimestamp(
            seconds, tz=datetime.timezone.utc
        ) + datetime.timedelta(microseconds=nanos // 1000)

    @property
    def size(self) -> int:
        """Length of the line in UTF-8 bytes, used for batch sizing."""
        return len(self.line.encode("utf-8", errors="surrogatepass"))


def create_log_entry(
    text: str,
    labels: LabelSet,
    timestamp_ns: Optional[int] = None,
) -> LogEntry:
    """Factory function that creates a LogEntry stamped with the current time."""
    return LogEntry(
        labels=labels,
        timestamp_ns=timestamp_ns if timestamp_ns is not None else time.time_ns(),
        line=text,
    )


class EntryFormatter:
    """Turns raw line bytes into LogEntry objects.

    Timestamps come from the wall clock in UTC epoch nanoseconds at the moment
    format() is called. They never go backwards within one formatter, so a
    clock step cannot reorder a stream at the ingestion side.
    """

    def __init__(self, clock=time.time_ns):
        self._clock = clock
        self._last_ns = 0
        self._lock = threading.Lock()

    def format(self, raw: bytes, labels: LabelSet) -> LogEntry:
        with self._lock:
            now = max(self._clock(), self._last_ns)
            self._last_ns = now
        return LogEntry(
            labels=labels,
            timestamp_ns=now,
            line=raw.decode("utf-8", errors="replace"),
        )
