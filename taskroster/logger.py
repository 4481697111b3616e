# taskroster/logger.py
import logging
import sys

LOGGER_NAME = "taskroster"

logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.INFO)

# Prevent duplicate handlers if imported multiple times
if not logger.handlers:
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_formatter = logging.Formatter("[%(levelname)s] %(message)s")
    stream_handler.setFormatter(stream_formatter)
    logger.addHandler(stream_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger, e.g. ``taskroster.engine.greedy``."""
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logger.getChild(name)


def set_verbosity(level: int) -> None:
    """Adjust the package log level (used by the CLI ``--verbose``/``--quiet`` flags)."""
    logger.setLevel(level)
