"""Push request serializer — Loki JSON push format and endpoint URL."""

import json
from urllib.parse import urlsplit, urlunsplit

from lokitee.models import LogEntry

PUSH_PATH = "loki/api/v1/push"


def build_push_request(entries: list[LogEntry]) -> dict:
    """Group entries into streams keyed by label set.

    Streams appear in the order their label set was first seen; values keep
    the order of *entries*.
    """
    streams: dict = {}
    for entry in entries:
        stream = streams.get(entry.labels)
        if stream is None:
            stream = {"stream": entry.labels.as_dict(), "values": []}
            streams[entry.labels] = stream
        stream["values"].append([str(entry.timestamp_ns), entry.line])
    return {"streams": list(streams.values())}


def encode_payload(payload: dict) -> bytes:
    """Serialize a push request dict to compact UTF-8 JSON ready for POSTing."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encode_push_request(entries: list[LogEntry]) -> bytes:
    return encode_payload(build_push_request(entries))


def push_url(addr: str) -> str:
    """Build the push endpoint from a base address.

    The base path is kept: `http://host/prefix` becomes
    `http://host/prefix/loki/api/v1/push`. Raises ValueError when the address
    is not an http(s) URL with a host.
    """
    try:
        parts = urlsplit(addr.strip())
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise ValueError(f"invalid url {addr}: {exc}") from None

    if parts.scheme not in ("http", "https"):
        raise ValueError(f"invalid url {addr}: scheme must be http or https")
    if not parts.hostname:
        raise ValueError(f"invalid url {addr}: missing host")

    segments = [s for s in parts.path.split("/") if s and s != "."]
    path = "/" + "/".join(segments + [PUSH_PATH])
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))
