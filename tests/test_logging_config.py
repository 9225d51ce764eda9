"""Tests for logging setup."""

import logging

import pytest
from rich.logging import RichHandler

from secret_sieve.logging_config import LOGGER_NAME, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    """Put the root and package loggers back the way pytest set them up."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    package_level = logging.getLogger(LOGGER_NAME).level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger(LOGGER_NAME).setLevel(package_level)


@pytest.mark.parametrize("verbose,quiet,expected", [
    (False, False, logging.WARNING),
    (True, False, logging.DEBUG),
    (False, True, logging.ERROR),
    (True, True, logging.ERROR),
])
def test_levels(verbose, quiet, expected):
    """Test that verbosity flags map to log levels, quiet winning."""
    logger = setup_logging(verbose=verbose, quiet=quiet)
    assert logger.name == LOGGER_NAME
    assert logger.level == expected


def test_rich_handler_on_stderr():
    """Test that records go to a rich handler bound to stderr."""
    setup_logging()
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], RichHandler)
    assert handlers[0].console.stderr


def test_log_file(tmp_path):
    """Test that a log file receives formatted records."""
    log_path = tmp_path / "sieve.log"
    setup_logging(verbose=True, log_file=str(log_path))

    logging.getLogger("secret_sieve.engine").debug("Scanned %d files", 3)
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_path.read_text(encoding="utf-8")
    assert "secret_sieve.engine - DEBUG - Scanned 3 files" in text
