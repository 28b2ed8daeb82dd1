"""
Logging configuration for gamewatch.

Modules log through ``logging.getLogger(__name__)``; this module attaches the
handlers to the package logger once, at start-up.
"""

import logging
import sys
from pathlib import Path

LOGGER_NAME = "gamewatch"


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure and return the package logger.

    Args:
        level: Console logging level (default: INFO).
        log_file: Optional file path; the file receives DEBUG and above.
        console: Attach a stdout handler. The terminal UI turns this off so
            log lines do not draw over the screen.

    Returns:
        The configured ``gamewatch`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file else level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(fmt="[%(levelname)s] %(message)s"))
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.propagate = False
    return logger
