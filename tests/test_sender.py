"""Tests for the HTTP sender with retry logic."""

import socket

import pytest

from lokitee.config import ClientConfig
from lokitee.labels import parse_labels
from lokitee.metrics import MetricsCollector
from lokitee.models import create_log_entry
from lokitee.sender import LokiSender, is_retryable
from lokitee.serializer import encode_push_request

PAYLOAD = encode_push_request([create_log_entry("hello", parse_labels('{job="t"}'), 1)])


def _make_sender(url, metrics=None, **overrides):
    defaults = {"min_backoff": 0.01, "max_backoff": 0.05, "max_retries": 3, "timeout": 2.0}
    defaults.update(overrides)
    delays: list[float] = []
    sender = LokiSender(ClientConfig(url=url, **defaults), metrics, sleep=delays.append)
    return sender, delays


def _unused_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestLokiSenderRealServer:
    """Integration tests against the fake Loki endpoint."""

    def test_send_success(self, fake_loki):
        sender, delays = _make_sender(fake_loki.push_url)
        try:
            assert sender.send(PAYLOAD) is True
        finally:
            sender.close()
        assert delays == []
        assert fake_loki.requests[0]["content_type"] == "application/json"
        assert fake_loki.received_lines() == ["hello"]

    def test_basic_auth(self, fake_loki):
        sender, _ = _make_sender(fake_loki.push_url, username="user", password="secret")
        try:
            sender.send(PAYLOAD)
        finally:
            sender.close()
        assert fake_loki.requests[0]["auth"] == ("user", "secret")

    def test_no_auth_by_default(self, fake_loki):
        sender, _ = _make_sender(fake_loki.push_url)
        try:
            sender.send(PAYLOAD)
        finally:
            sender.close()
        assert fake_loki.requests[0]["auth"] is None

    def test_retries_server_errors_then_succeeds(self, fake_loki):
        fake_loki.statuses = [500, 429, 204]
        metrics = MetricsCollector()
        sender, delays = _make_sender(fake_loki.push_url, metrics)
        try:
            assert sender.send(PAYLOAD) is True
        finally:
            sender.close()
        assert len(fake_loki.requests) == 3
        assert len(delays) == 2
        assert metrics.snapshot()["retries"] == 2

    def test_gives_up_after_max_retries(self, fake_loki):
        fake_loki.statuses = [503] * 10
        sender, delays = _make_sender(fake_loki.push_url, max_retries=2)
        try:
            assert sender.send(PAYLOAD) is False
        finally:
            sender.close()
        assert len(fake_loki.requests) == 3
        assert len(delays) == 2

    def test_client_errors_are_not_retried(self, fake_loki, caplog):
        fake_loki.statuses = [400]
        fake_loki.error_body = "entry too far behind"
        sender, delays = _make_sender(fake_loki.push_url)
        try:
            assert sender.send(PAYLOAD) is False
        finally:
            sender.close()
        assert len(fake_loki.requests) == 1
        assert delays == []
        assert "entry too far behind" in caplog.text

    def test_connection_refused_is_retried(self):
        url = f"http://127.0.0.1:{_unused_port()}/loki/api/v1/push"
        sender, delays = _make_sender(url, max_retries=1)
        try:
            assert sender.send(PAYLOAD) is False
        finally:
            sender.close()
        assert len(delays) == 1


class TestRetryable:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 599])
    def test_retryable(self, status):
        assert is_retryable(status)

    @pytest.mark.parametrize("status", [400, 401, 404, 413])
    def test_not_retryable(self, status):
        assert not is_retryable(status)


class TestBackoffDelay:
    """Unit tests for the exponential backoff calculation."""

    def test_backoff_grows_exponentially(self):
        sender, _ = _make_sender("http://x", min_backoff=0.1, max_backoff=100.0)
        for attempt, base in enumerate([0.1, 0.2, 0.4, 0.8]):
            delay = sender._backoff_delay(attempt)
            assert base * 0.8 <= delay <= base * 1.2
        sender.close()

    def test_backoff_capped_at_max(self):
        sender, _ = _make_sender("http://x", min_backoff=0.5, max_backoff=2.0)
        for _ in range(50):
            assert sender._backoff_delay(10) <= 2.0
        sender.close()

    def test_jitter_varies(self):
        sender, _ = _make_sender("http://x", min_backoff=0.1, max_backoff=100.0)
        delays = {sender._backoff_delay(2) for _ in range(100)}
        sender.close()
        assert len(delays) > 1
