"""One-shot pusher — send a single message to Loki with one synchronous POST."""

import logging
from typing import IO, Optional

import requests

from lokitee.config import ConfigError, PushConfig
from lokitee.labels import LabelSet
from lokitee.models import create_log_entry
from lokitee.sender import USER_AGENT
from lokitee.serializer import build_push_request, encode_payload

logger = logging.getLogger(__name__)


class PushError(Exception):
    """The push request failed: a non-2xx response or a network error."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def build_push_payload(
    labels: LabelSet, text: str, timestamp_ns: Optional[int] = None
) -> dict:
    """Build a push request with one stream holding one value.

    When *timestamp_ns* is None the current time is captured here, right
    before the payload is encoded.
    """
    return build_push_request([create_log_entry(text, labels, timestamp_ns)])


def read_message(stdin: IO, args) -> str:
    """Pick the message text: piped stdin first, then the joined arguments.

    Piped input is read as bytes (through `stdin.buffer` for a text stream)
    and decoded as UTF-8 with U+FFFD replacement. A single trailing newline is
    removed from it.
    """
    if stdin is not None and not stdin.isatty():
        piped = getattr(stdin, "buffer", stdin).read()
        if isinstance(piped, bytes):
            piped = piped.decode("utf-8", errors="replace")
        if piped.endswith("\n"):
            piped = piped[:-1]
            if piped.endswith("\r"):
                piped = piped[:-1]
        if piped:
            return piped

    message = " ".join(args)
    if not message:
        raise ConfigError("no message given: pass it as arguments or pipe it on stdin")
    return message


def push(config: PushConfig, text: str) -> requests.Response:
    """POST *text* as one entry. No retry; failures raise PushError."""
    body = encode_payload(build_push_payload(config.labels, text))

    try:
        resp = requests.post(
            config.url,
            data=body,
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
            auth=config.auth,
            timeout=config.timeout,
        )
    except requests.RequestException as exc:
        raise PushError(f"failed to send request: {exc}") from exc

    if not 200 <= resp.status_code < 300:
        raise PushError(
            f"server returned HTTP status {resp.status_code} {resp.reason}: {resp.text}",
            status_code=resp.status_code,
            body=resp.text,
        )

    logger.info("Pushed %d bytes to %s (status %d)", len(body), config.url, resp.status_code)
    return resp
