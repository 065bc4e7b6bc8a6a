"""Dual-sink tee — split a byte stream into lines and fan each line out to
stdout and the Loki submission queue."""

import logging
from typing import BinaryIO, Callable, Iterator

from lokitee.labels import LabelSet
from lokitee.models import EntryFormatter, LogEntry

logger = logging.getLogger(__name__)


def iter_lines(stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of *stream* without its terminator.

    A trailing `\\r` before the newline is stripped as well. A final fragment
    with no newline at end of stream is discarded and logged.
    """
    for raw in stream:
        if not raw.endswith(b"\n"):
            logger.warning(
                "Discarding %d bytes of unterminated input at end of stream",
                len(raw),
            )
            return
        line = raw[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
        yield line


class PassthroughWriter:
    """Writes each line plus exactly one newline to a binary stream."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def write(self, line: bytes):
        self._stream.write(line + b"\n")
        self._stream.flush()


class EntryWriter:
    """Stamps each line as a LogEntry and hands it to *submit*.

    *submit* is expected to block while the downstream queue is full.
    """

    def __init__(
        self,
        labels: LabelSet,
        submit: Callable[[LogEntry], None],
        formatter: EntryFormatter | None = None,
    ):
        self._labels = labels
        self._submit = submit
        self._formatter = formatter or EntryFormatter()

    def write(self, line: bytes):
        self._submit(self._formatter.format(line, self._labels))


class Tee:
    """Forwards every line to the passthrough sink and the remote sink.

    The sinks are handled independently: a failed passthrough write is
    logged and counted, and the line is still submitted remotely.
    """

    def __init__(self, passthrough: PassthroughWriter, remote: EntryWriter):
        self._passthrough = passthrough
        self._remote = remote
        self.lines = 0
        self.passthrough_errors = 0

    def write(self, line: bytes):
        self.lines += 1
        try:
            self._passthrough.write(line)
        except (OSError, ValueError) as exc:  # ValueError: stdout already closed
            self.passthrough_errors += 1
            if self.passthrough_errors == 1:
                logger.error("Failed writing to stdout: %s", exc)
            else:
                logger.debug("Failed writing to stdout: %s", exc)

        self._remote.write(line)


def run_tee(source: BinaryIO, tee: Tee) -> int:
    """Copy every line of *source* through *tee*. Returns the line count.

    Errors reading *source* propagate to the caller.
    """
    for line in iter_lines(source):
        tee.write(line)

    if tee.passthrough_errors:
        logger.warning(
            "%d of %d lines could not be written to stdout",
            tee.passthrough_errors,
            tee.lines,
        )
    return tee.lines
