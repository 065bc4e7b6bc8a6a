"""Entry point for lokitee: copy stdin to stdout and ship every line to Loki."""

import logging
import os
import sys

from lokitee.client import BatchingClient
from lokitee.config import ConfigError, load_tee_config
from lokitee.interrupt import InterruptWatcher
from lokitee.tee import EntryWriter, PassthroughWriter, Tee, run_tee

logger = logging.getLogger(__name__)


def configure_logging(environ=None):
    """Log to stderr; stdout is reserved for the passthrough copy."""
    if environ is None:
        environ = os.environ
    logging.basicConfig(
        level=environ.get("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        stream=sys.stderr,
    )


def main(argv=None, stdin=None, stdout=None, environ=None) -> int:
    configure_logging(environ)

    try:
        config = load_tee_config(argv, environ)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    stdin = stdin if stdin is not None else sys.stdin.buffer
    stdout = stdout if stdout is not None else sys.stdout.buffer

    watcher = InterruptWatcher(config.interrupt_wait)
    watcher.install()

    client = BatchingClient(config.client)
    tee = Tee(
        PassthroughWriter(stdout),
        EntryWriter(config.labels, client.enqueue),
    )
    logger.info(
        "Shipping stdin to %s with labels %s", config.client.url, config.labels
    )

    status = 0
    try:
        try:
            run_tee(stdin, tee)
        except KeyboardInterrupt:
            logger.warning("Interrupted, flushing pending entries")
        except OSError as exc:
            print(f"error: reading input: {exc}", file=sys.stderr)
            status = 1
        client.stop()
    except KeyboardInterrupt:
        logger.warning("Interrupted while flushing, unsent entries are lost")
    finally:
        watcher.wait()
        watcher.uninstall()

    if tee.passthrough_errors and stdout is sys.stdout.buffer:
        # Keep interpreter shutdown from flushing into a broken pipe again.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
    return status


if __name__ == "__main__":
    sys.exit(main())
