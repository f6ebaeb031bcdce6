"""Logging setup for applications embedding the uploader.

Writes everything to ~/.hsuploader/debug.log for bug reports and INFO and
above to the console.
"""

import logging
from pathlib import Path
from typing import Optional

LOG_DIR = Path.home() / ".hsuploader"
LOG_FILE = LOG_DIR / "debug.log"

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PACKAGE_LOGGER = "hsuploader"

# Handlers installed by setup_logging, so repeated calls replace them
_installed: list[logging.Handler] = []


def setup_logging(
    log_file: Optional[Path] = None,
    console_level: int = logging.INFO,
) -> logging.Logger:
    """Attach file and console handlers to the package logger.

    Args:
        log_file: Debug log path. Defaults to ~/.hsuploader/debug.log.
        console_level: Minimum level printed to the console.

    Returns:
        The configured package logger.
    """
    log_file = log_file or LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    for handler in _installed:
        package_logger.removeHandler(handler)
        handler.close()
    _installed.clear()

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    for handler in (file_handler, console_handler):
        package_logger.addHandler(handler)
        _installed.append(handler)
    return package_logger
