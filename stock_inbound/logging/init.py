from __future__ import annotations

import logging
import sys
from typing import TextIO

"""Application logging: one stdout handler, one label per line.

Lines look like `INFO parsed mode=blocks ...` or `SUMMARY file=in.xlsx ...`; the label
set is DEBUG|INFO|WARN|ERROR|CRITICAL|SUMMARY. Modules log through
`logging.getLogger(__name__)` and reach the handler installed on the `stock_inbound`
logger by propagation. Row issues are not logged here; they go to the JSON Lines
error log (`stock_inbound.logging.error_log`).
"""

__all__ = [
    "LOGGER_NAME",
    "SUMMARY_LEVEL",
    "LabeledFormatter",
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
]

LOGGER_NAME = "stock_inbound"

SUMMARY_LEVEL = 25  # INFO < SUMMARY < WARNING
logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

_configured: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """`<LABEL> <message>`; WARNING is shortened to WARN."""

    labels = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        SUMMARY_LEVEL: "SUMMARY",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.labels.get(record.levelno, record.levelname)
        return f"{label} {record.getMessage()}"


def _apply_level(logger: logging.Logger, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)
    for h in logger.handlers:
        h.setLevel(level)


def setup_logging(debug: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """Install the labeled handler on the application logger.

    Calling it again returns the same logger; `debug=True` on a later call still lowers
    the level.

    Args:
        debug: log DEBUG lines too
        stream: output stream (default: the current sys.stdout)
    """
    global _configured

    if _configured is None:
        logger = logging.getLogger(LOGGER_NAME)
        for old in list(logger.handlers):
            logger.removeHandler(old)
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        handler.setFormatter(LabeledFormatter())
        logger.addHandler(handler)
        logger.propagate = False  # no second copy through the root logger
        _configured = logger
        _apply_level(logger, debug)
    elif debug:
        _apply_level(_configured, True)
    return _configured


def get_logger() -> logging.Logger:
    return _configured if _configured is not None else setup_logging()


def log_summary(message: str) -> None:
    """Emit `message` with the SUMMARY label."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Forget the configured logger so the next setup rebinds the handler (tests)."""
    global _configured
    _configured = None
