"""Configuration module — frozen dataclasses loaded from env vars, CLI args and YAML."""

import argparse
import logging
import os
from dataclasses import dataclass, field, replace

import yaml

from lokitee.labels import LabelSet, ParseError, default_labels, parse_labels
from lokitee.serializer import push_url

logger = logging.getLogger(__name__)

TEE_TOOL = "lokitee"
PUSH_TOOL = "lokipush"

# Sender tuning keys accepted in the YAML file, with their types.
_TUNING_KEYS = {
    "batch_wait": float,
    "batch_size": int,
    "min_backoff": float,
    "max_backoff": float,
    "max_retries": int,
    "timeout": float,
    "queue_size": int,
}


class ConfigError(Exception):
    """Raised for missing, contradictory or malformed configuration."""


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises ConfigError instead of exiting with status 2."""

    def error(self, message):
        raise ConfigError(message)


@dataclass(frozen=True)
class ClientConfig:
    url: str
    username: str = ""
    password: str = ""
    batch_wait: float = 1.0
    batch_size: int = 1024 * 1024
    min_backoff: float = 0.5
    max_backoff: float = 300.0
    max_retries: int = 10
    timeout: float = 10.0
    queue_size: int = 1024
    # Reserved; not sent to the server.
    tenant_id: str = ""

    @property
    def auth(self):
        if self.username or self.password:
            return (self.username, self.password)
        return None


@dataclass(frozen=True)
class TeeConfig:
    client: ClientConfig
    labels: LabelSet
    interrupt_wait: int = 0


@dataclass(frozen=True)
class PushConfig:
    url: str
    labels: LabelSet
    username: str = ""
    password: str = ""
    timeout: float = 10.0
    message: tuple = field(default_factory=tuple)

    @property
    def auth(self):
        if self.username or self.password:
            return (self.username, self.password)
        return None


def load_yaml_config(path: str | None) -> dict:
    """Load sender tuning values from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"config file {path} not found") from None
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from None

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    section = data.get("client", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'client' in {path} must be a mapping")

    tuning = {}
    for key, value in section.items():
        if key not in _TUNING_KEYS:
            logger.warning("Ignoring unknown config key %r in %s", key, path)
            continue
        try:
            tuning[key] = _TUNING_KEYS[key](value)
        except (TypeError, ValueError):
            raise ConfigError(f"invalid value for {key!r} in {path}: {value!r}") from None
    logger.info("Loaded sender settings from %s", path)
    return tuning


def _add_common_args(parser: argparse.ArgumentParser, tool: str):
    parser.add_argument(
        "--addr", default="",
        help="Server address. Defaults to $LOKI_ADDR if not set.",
    )
    parser.add_argument(
        "--username", default="",
        help="Username for basic auth. Defaults to $LOKI_USERNAME if not set.",
    )
    parser.add_argument(
        "--password", default="",
        help="Password for basic auth. Defaults to $LOKI_PASSWORD if not set.",
    )
    parser.add_argument(
        "--labels", default=default_labels(tool),
        help='Labels to inject for logs, i.e. {app="shell"}',
    )


def _resolve_common(args, environ) -> tuple[str, str, str, LabelSet]:
    """Apply env fallbacks and validate address, credentials and labels."""
    addr = args.addr or environ.get("LOKI_ADDR", "")
    username = args.username or environ.get("LOKI_USERNAME", "")
    password = args.password or environ.get("LOKI_PASSWORD", "")

    if not addr:
        raise ConfigError("--addr must be provided or $LOKI_ADDR must be set")
    if bool(username) != bool(password):
        raise ConfigError(
            "username and password must be set together, but one is unset"
        )

    try:
        labels = parse_labels(args.labels)
    except ParseError as exc:
        raise ConfigError(f"could not parse --labels: {exc}") from None

    try:
        url = push_url(addr)
    except ValueError as exc:
        raise ConfigError(str(exc)) from None

    return url, username, password, labels


def load_tee_config(argv=None, environ=None) -> TeeConfig:
    """Build TeeConfig from defaults <- YAML file <- env vars <- CLI args.

    Pass argv and environ for testability; when None, argparse reads sys.argv
    and os.environ is used.
    """
    if environ is None:
        environ = os.environ

    parser = _ArgumentParser(
        prog=TEE_TOOL,
        description="Copy stdin to stdout and ship every line to Loki",
    )
    _add_common_args(parser, TEE_TOOL)
    parser.add_argument(
        "--interrupt-wait", type=int, default=0,
        help="Seconds to delay exiting after an interrupt signal such as SIGTERM",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to a YAML file with sender batching and retry settings",
    )
    args = parser.parse_args(argv)

    if args.interrupt_wait < 0:
        raise ConfigError("--interrupt-wait must not be negative")

    url, username, password, labels = _resolve_common(args, environ)
    client = ClientConfig(url=url, username=username, password=password)
    client = replace(client, **load_yaml_config(args.config))
    _validate_client(client)

    return TeeConfig(
        client=client,
        labels=labels,
        interrupt_wait=args.interrupt_wait,
    )


def load_push_config(argv=None, environ=None) -> PushConfig:
    """Build PushConfig for the one-shot tool from env vars and CLI args."""
    if environ is None:
        environ = os.environ

    parser = _ArgumentParser(
        prog=PUSH_TOOL,
        description="Send one message to Loki as a single log entry",
    )
    _add_common_args(parser, PUSH_TOOL)
    parser.add_argument(
        "--timeout", type=float, default=PushConfig.timeout,
        help="HTTP request timeout in seconds",
    )
    parser.add_argument("message", nargs="*", help="Message text (stdin wins when piped)")
    args = parser.parse_args(argv)

    if args.timeout <= 0:
        raise ConfigError("--timeout must be positive")

    url, username, password, labels = _resolve_common(args, environ)
    return PushConfig(
        url=url,
        labels=labels,
        username=username,
        password=password,
        timeout=args.timeout,
        message=tuple(args.message),
    )


def _validate_client(cfg: ClientConfig):
    for name in ("batch_wait", "batch_size", "timeout", "queue_size"):
        if getattr(cfg, name) <= 0:
            raise ConfigError(f"{name} must be positive")
    if cfg.max_retries < 0:
        raise ConfigError("max_retries must not be negative")
    if cfg.min_backoff < 0 or cfg.max_backoff < cfg.min_backoff:
        raise ConfigError("backoff bounds must satisfy 0 <= min_backoff <= max_backoff")
