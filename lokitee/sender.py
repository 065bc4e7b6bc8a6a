"""HTTP sender — POSTs encoded batches to Loki with retry and exponential backoff."""

import logging
import random
import time

import requests

from lokitee.config import ClientConfig
from lokitee.metrics import MetricsCollector

logger = logging.getLogger(__name__)

USER_AGENT = "lokitee/0.1.0"


def is_retryable(status_code: int) -> bool:
    """Rate limiting and server errors are retried; other statuses are final."""
    return status_code == 429 or 500 <= status_code < 600


class LokiSender:
    """Delivers push request bodies to the Loki push endpoint.

    Failures never raise: they are logged and reported through the return
    value of send().
    """

    def __init__(
        self,
        config: ClientConfig,
        metrics: MetricsCollector | None = None,
        sleep=time.sleep,
    ):
        self._config = config
        self._metrics = metrics
        self._sleep = sleep
        self._session = requests.Session()
        self._session.headers.update(
            {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        )
        if config.auth:
            self._session.auth = config.auth

    def send(self, payload: bytes) -> bool:
        """POST payload. Returns True on a 2xx, False once retries are exhausted."""
        attempts = self._config.max_retries + 1
        for attempt in range(attempts):
            try:
                resp = self._session.post(
                    self._config.url, data=payload, timeout=self._config.timeout
                )
            except requests.RequestException as exc:
                status, reason = None, str(exc)
                retryable = True
            else:
                if 200 <= resp.status_code < 300:
                    return True
                status, reason = resp.status_code, resp.text.strip()
                retryable = is_retryable(resp.status_code)

            if not retryable:
                logger.error(
                    "Final error sending batch: status=%s error=%s", status, reason
                )
                return False

            if attempt < attempts - 1:
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "Error sending batch, will retry in %.2fs (attempt %d/%d): status=%s error=%s",
                    delay,
                    attempt + 1,
                    attempts,
                    status,
                    reason,
                )
                if self._metrics is not None:
                    self._metrics.record_retry()
                self._sleep(delay)
            else:
                logger.error(
                    "Final error sending batch after %d attempts: status=%s error=%s",
                    attempts,
                    status,
                    reason,
                )
        return False

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter.

        The base delay doubles each attempt starting at min_backoff, is capped
        at max_backoff, then multiplied by a random jitter factor between 0.8
        and 1.2 without ever exceeding max_backoff.
        """
        base = self._config.min_backoff * (2 ** attempt)
        capped = min(base, self._config.max_backoff)
        jitter = random.uniform(0.8, 1.2)
        return min(capped * jitter, self._config.max_backoff)

    def close(self):
        """Close the underlying HTTP session."""
        self._session.close()
