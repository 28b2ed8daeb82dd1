"""Tests for logging setup."""

import logging
from pathlib import Path

import pytest

from gamewatch.log_config import LOGGER_NAME, setup_logging


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


def test_console_handler():
    """Test the default setup logs to stdout at INFO."""
    logger = setup_logging()

    assert logger.name == "gamewatch"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.StreamHandler)
    assert not logger.propagate


def test_repeated_setup_does_not_duplicate_handlers():
    """Test calling setup twice keeps a single handler."""
    setup_logging()
    logger = setup_logging(level=logging.WARNING)

    assert len(logger.handlers) == 1
    assert logger.handlers[0].level == logging.WARNING


def test_file_handler_receives_debug(tmp_path: Path):
    """Test the log file records DEBUG messages from submodules."""
    log_file = tmp_path / "logs" / "gamewatch.log"
    setup_logging(log_file=log_file, console=False)

    logging.getLogger("gamewatch.capture").debug("grabbing window %s", "w1")
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert "[DEBUG] gamewatch.capture - grabbing window w1" in content


def test_no_console_no_file():
    """Test a silent setup installs a NullHandler."""
    logger = setup_logging(console=False)

    assert [type(h) for h in logger.handlers] == [logging.NullHandler]
