"""Tests for the package logging setup."""

import logging

import pytest

from hsuploader.logging_config import PACKAGE_LOGGER, setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger(PACKAGE_LOGGER)
    saved = list(logger.handlers), logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in saved[0]:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(saved[1])


class TestSetupLogging:
    """Tests for handler installation."""

    def test_writes_debug_to_file(self, tmp_path, package_logger):
        log_file = tmp_path / "logs" / "debug.log"

        logger = setup_logging(log_file)
        logging.getLogger("hsuploader.tailer").debug("offset 42")
        for handler in logger.handlers:
            handler.flush()

        assert logger is package_logger
        text = log_file.read_text(encoding="utf-8")
        assert "DEBUG" in text
        assert "hsuploader.tailer | offset 42" in text

    def test_repeated_setup_replaces_handlers(self, tmp_path, package_logger):
        before = len(package_logger.handlers)

        setup_logging(tmp_path / "a.log")
        setup_logging(tmp_path / "b.log", console_level=logging.WARNING)

        assert len(package_logger.handlers) == before + 2
        levels = sorted(h.level for h in package_logger.handlers[before:])
        assert levels == [logging.DEBUG, logging.WARNING]
