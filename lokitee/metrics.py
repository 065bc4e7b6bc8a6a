"""Metrics collector — thread-safe counters for batch delivery to Loki."""

import threading


class MetricsCollector:
    """Collects delivery statistics for the background sender."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._batches_sent: int = 0
        self._batches_failed: int = 0
        self._entries_sent: int = 0
        self._entries_failed: int = 0
        self._bytes_sent: int = 0
        self._retries: int = 0
        self._flush_triggers: dict = {"size": 0, "timer": 0, "stop": 0}

    def record_batch(self, entries: int, bytes_sent: int, trigger: str = "size") -> None:
        """Record a batch that the server accepted.

        Args:
            entries: Number of log entries in the batch.
            bytes_sent: Encoded request body size in bytes.
            trigger: What caused the flush: "size", "timer" or "stop".
        """
        with self._lock:
            self._batches_sent += 1
            self._entries_sent += entries
            self._bytes_sent += bytes_sent
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def record_failure(self, entries: int) -> None:
        """Record a batch that was dropped after its final send attempt."""
        with self._lock:
            self._batches_failed += 1
            self._entries_failed += entries

    def record_retry(self) -> None:
        with self._lock:
            self._retries += 1

    def snapshot(self) -> dict:
        """Return a point-in-time copy of the counters."""
        with self._lock:
            return {
                "batches_sent": self._batches_sent,
                "batches_failed": self._batches_failed,
                "entries_sent": self._entries_sent,
                "entries_failed": self._entries_failed,
                "bytes_sent": self._bytes_sent,
                "retries": self._retries,
                "flush_triggers": dict(self._flush_triggers),
            }
