"""Interrupt watcher — delays process exit after SIGINT/SIGTERM so the
background sender gets a grace window to flush."""

import logging
import signal
import threading
import time

logger = logging.getLogger(__name__)

WATCHED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InterruptWatcher:
    """Waits for an interrupt, sleeps for *wait_seconds*, then ends the run.

    The signal handler only sets a one-shot event. A daemon thread waits on
    that event, sleeps through the grace period and then calls *on_expire*.
    The default *on_expire* re-signals the main thread; once the grace period
    has expired the handler raises KeyboardInterrupt there, which unblocks a
    pending read of stdin.
    """

    def __init__(self, wait_seconds: float = 0, on_expire=None):
        self._wait_seconds = wait_seconds
        self._on_expire = on_expire or self._interrupt_main
        self._received = threading.Event()
        self._expired = threading.Event()
        self._done = threading.Event()
        self._finishing = False
        self._main_ident = threading.main_thread().ident
        self._previous: dict = {}
        self._thread = threading.Thread(
            target=self._watch, name="lokitee-interrupt", daemon=True
        )
        self._thread.start()

    @property
    def received(self) -> bool:
        return self._received.is_set()

    @property
    def expired(self) -> bool:
        return self._expired.is_set()

    def install(self):
        """Register the handler for SIGINT and SIGTERM (main thread only)."""
        for signum in WATCHED_SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle)

    def uninstall(self):
        """Restore the handlers that were active before install()."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def notify(self):
        """Record that an interrupt arrived. Later calls are no-ops."""
        self._received.set()

    def wait(self):
        """Block until the grace period has elapsed, if an interrupt arrived.

        After wait() is entered, further signals no longer raise.
        """
        self._finishing = True
        if self._received.is_set():
            self._done.wait()

    def _handle(self, signum, frame):
        if self._finishing:
            return
        if self._expired.is_set():
            raise KeyboardInterrupt
        if not self._received.is_set():
            logger.warning(
                "Received signal %d, exiting in %ds", signum, self._wait_seconds
            )
        self.notify()

    def _watch(self):
        self._received.wait()
        if self._wait_seconds > 0:
            time.sleep(self._wait_seconds)
        self._expired.set()
        try:
            if not self._finishing:
                self._on_expire()
        finally:
            self._done.set()

    def _interrupt_main(self):
        signal.pthread_kill(self._main_ident, signal.SIGINT)
