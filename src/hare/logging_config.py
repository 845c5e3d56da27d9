"""Logging setup for the dispatcher.

All dispatcher modules log through children of the ``hare`` logger, so one
handler installed here receives every dispatch event.
"""

import logging
import sys

LOG_FORMAT = "[%(asctime)s %(levelname)s %(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
STDOUT_DESTINATION = "-"


def configure_logging(destination: str | None, level: str | int = logging.DEBUG) -> logging.Handler:
    """Route the ``hare`` loggers to destination and return the installed handler.

    destination is a file path (appended to), ``-`` for stdout, or None to
    drop events. Calling again replaces the previously installed handler.
    """
    root = logging.getLogger("hare")
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    if destination is None:
        handler: logging.Handler = logging.NullHandler()
    elif destination == STDOUT_DESTINATION:
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.FileHandler(destination, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False
    return handler
