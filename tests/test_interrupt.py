"""Tests for the interrupt watcher."""

import signal
import threading
import time

import pytest

from lokitee.interrupt import InterruptWatcher


class TestInterruptWatcher:
    def test_wait_returns_immediately_without_signal(self):
        watcher = InterruptWatcher(wait_seconds=5, on_expire=lambda: None)
        start = time.monotonic()
        watcher.wait()
        assert time.monotonic() - start < 1.0
        assert not watcher.received

    def test_exit_delayed_by_configured_wait(self):
        expired_at = []
        watcher = InterruptWatcher(
            wait_seconds=1, on_expire=lambda: expired_at.append(time.monotonic())
        )
        start = time.monotonic()
        watcher.notify()
        watcher.wait()
        elapsed = time.monotonic() - start

        assert watcher.received
        assert watcher.expired
        assert elapsed >= 1.0

    def test_on_expire_called_once_after_delay(self):
        called = threading.Event()
        watcher = InterruptWatcher(wait_seconds=0.3, on_expire=called.set)
        start = time.monotonic()
        watcher.notify()
        watcher.notify()
        assert called.wait(timeout=5)
        assert time.monotonic() - start >= 0.3

    def test_zero_wait_expires_immediately(self):
        called = threading.Event()
        watcher = InterruptWatcher(wait_seconds=0, on_expire=called.set)
        watcher.notify()
        assert called.wait(timeout=2)
        assert watcher.expired

    def test_install_and_uninstall_restore_handlers(self):
        previous = signal.getsignal(signal.SIGTERM)
        watcher = InterruptWatcher(wait_seconds=0, on_expire=lambda: None)
        watcher.install()
        try:
            assert signal.getsignal(signal.SIGTERM) == watcher._handle
        finally:
            watcher.uninstall()
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_handler_notifies_then_raises_after_expiry(self):
        watcher = InterruptWatcher(wait_seconds=0, on_expire=lambda: None)
        watcher._handle(signal.SIGINT, None)
        watcher.wait()
        assert watcher.expired

        fresh = InterruptWatcher(wait_seconds=0, on_expire=lambda: None)
        fresh.notify()
        assert fresh._expired.wait(timeout=2)
        with pytest.raises(KeyboardInterrupt):
            fresh._handle(signal.SIGINT, None)

    def test_real_signal_interrupts_main_thread(self):
        watcher = InterruptWatcher(wait_seconds=0.2)
        watcher.install()
        start = time.monotonic()
        try:
            with pytest.raises(KeyboardInterrupt):
                signal.raise_signal(signal.SIGINT)
                # Blocks until the watcher re-signals this thread.
                time.sleep(10)
        finally:
            watcher.wait()
            watcher.uninstall()
        assert time.monotonic() - start >= 0.2
