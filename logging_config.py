"""
Logging configuration for console output.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys

from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%H:%M:%S"

_LEVEL_COLORS = {
    logging.DEBUG: C_BLUE,
    logging.INFO: C_GREEN,
    logging.WARNING: C_YELLOW,
    logging.ERROR: C_RED,
    logging.CRITICAL: C_RED,
}


class ColorFormatter(logging.Formatter):
    """Colours the level name only, so piped output stays readable."""

    def __init__(self, use_color: bool = True):
        super().__init__(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)
        original = record.levelname
        color = _LEVEL_COLORS.get(record.levelno, "")
        record.levelname = f"{color}{original:<7}{C_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup(level=logging.INFO):
    """
    Configure the root logger with a single stdout handler.

    - Minimal format: time + level + message
    - Quietens web3 / HTTP client request logs
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ColorFormatter(use_color=sys.stdout.isatty()))
    root.addHandler(console)

    # Suppress noisy loggers
    for name in ("web3", "urllib3", "httpx", "httpcore", "telegram.ext"):
        logging.getLogger(name).setLevel(logging.WARNING)
