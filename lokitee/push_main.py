"""Entry point for lokipush: send one message to Loki and exit."""

import logging
import sys

from lokitee.config import ConfigError, load_push_config
from lokitee.main import configure_logging
from lokitee.push import PushError, push, read_message

logger = logging.getLogger(__name__)


def main(argv=None, stdin=None, environ=None) -> int:
    configure_logging(environ)

    try:
        config = load_push_config(argv, environ)
        text = read_message(stdin if stdin is not None else sys.stdin, config.message)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: reading input: {exc}", file=sys.stderr)
        return 1

    try:
        push(config, text)
    except PushError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
