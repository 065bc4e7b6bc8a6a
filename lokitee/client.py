"""Batching client — bounded submission queue drained by a background sender thread."""

import logging
import queue
import threading
import time

from lokitee.config import ClientConfig
from lokitee.metrics import MetricsCollector
from lokitee.models import LogEntry
from lokitee.sender import LokiSender
from lokitee.serializer import encode_push_request

logger = logging.getLogger(__name__)

_STOP = object()


class BatchingClient:
    """Ships LogEntry objects to Loki in batches.

    Producer side: enqueue() does a blocking put on a bounded queue, so a slow
    or unreachable server back-pressures the caller instead of growing memory
    or dropping entries.

    Consumer side: a daemon thread collects entries into a batch and sends it
    once the next entry would push it over batch_size bytes, or once the
    oldest entry has waited batch_wait seconds. stop() sends what is left.
    """

    def __init__(self, config: ClientConfig, sender: LokiSender | None = None):
        self._config = config
        self._metrics = MetricsCollector()
        self._sender = sender or LokiSender(config, self._metrics)
        self._queue: queue.Queue = queue.Queue(maxsize=config.queue_size)
        self._stopped = False
        self._stop_lock = threading.Lock()

        self._batch: list[LogEntry] = []
        self._batch_bytes = 0
        self._batch_started = 0.0

        self._thread = threading.Thread(
            target=self._run, name="lokitee-sender", daemon=True
        )
        self._thread.start()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, entry: LogEntry):
        """Hand an entry to the sender, blocking while the queue is full.

        The put happens under the stop lock so no entry can land behind the
        stop sentinel.
        """
        with self._stop_lock:
            if self._stopped:
                raise RuntimeError("client is stopped")
            self._queue.put(entry)

    def stop(self):
        """Flush buffered entries, wait for the final send, release resources."""
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
            self._queue.put(_STOP)

        self._thread.join()
        self._sender.close()

        snap = self._metrics.snapshot()
        if snap["entries_failed"]:
            logger.warning(
                "%d entries in %d batches could not be delivered",
                snap["entries_failed"],
                snap["batches_failed"],
            )
        logger.info("Client metrics: %s", snap)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def pending_count(self) -> int:
        """Entries waiting in the queue, not counting the batch being built."""
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Consumer thread
    # ------------------------------------------------------------------

    def _run(self):
        while True:
            timeout = None
            if self._batch:
                elapsed = time.monotonic() - self._batch_started
                timeout = max(self._config.batch_wait - elapsed, 0.0)

            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                self._flush("timer")
                continue

            if item is _STOP:
                self._flush("stop")
                return

            self._add(item)

    def _add(self, entry: LogEntry):
        size = entry.size
        if self._batch and self._batch_bytes + size > self._config.batch_size:
            self._flush("size")

        if not self._batch:
            self._batch_started = time.monotonic()
        self._batch.append(entry)
        self._batch_bytes += size

        if time.monotonic() - self._batch_started >= self._config.batch_wait:
            self._flush("timer")

    def _flush(self, trigger: str):
        """Encode and send the current batch, then start a new one.

        Nothing raised here may escape: a dead consumer would leave enqueue()
        and stop() blocked on a full queue forever.
        """
        if not self._batch:
            return

        batch = self._batch
        self._batch = []
        self._batch_bytes = 0

        try:
            payload = encode_push_request(batch)
            ok = self._sender.send(payload)
        except Exception:
            logger.exception("Unexpected error sending batch of %d entries", len(batch))
            ok = False

        if ok:
            self._metrics.record_batch(
                entries=len(batch), bytes_sent=len(payload), trigger=trigger
            )
            logger.debug(
                "Sent batch of %d entries (%d bytes, trigger=%s)",
                len(batch),
                len(payload),
                trigger,
            )
        else:
            self._metrics.record_failure(len(batch))
            logger.error("Dropped batch of %d entries", len(batch))
