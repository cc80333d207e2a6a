"""Logging setup for the zrm command line."""
from __future__ import annotations

import logging
import os
import sys

# ANSI color codes (respect NO_COLOR convention: https://no-color.org)
if os.environ.get("NO_COLOR") is not None:
    GREEN = RED = YELLOW = RESET = ""
else:
    GREEN = "\033[32m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    RESET = "\033[0m"

_LEVEL_NAMES = {
    logging.DEBUG: "DBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: " ERR",
    logging.CRITICAL: "CRIT",
}

_LEVEL_COLORS = {
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED,
}


class _ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno, "")
        return f"{color}{text}{RESET}" if color else text


def setup_logging(verbose: bool = False) -> None:
    """
    Send zrm's log records to stderr.

    The package logger runs at INFO (DEBUG with verbose); everything else
    at WARNING. Uncaught exceptions are logged at CRITICAL.
    """
    for level, name in _LEVEL_NAMES.items():
        logging.addLevelName(level, name)

    handler = logging.StreamHandler()
    handler.setFormatter(_ColorFormatter("[%(asctime)s %(levelname)s]: %(message)s", "%H:%M:%S"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.WARNING)
    logging.getLogger(__name__.split(".")[0]).setLevel(
        logging.DEBUG if verbose else logging.INFO
    )

    # see https://stackoverflow.com/a/16993115
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            root.info("Keyboard interrupt")
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        root.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception
