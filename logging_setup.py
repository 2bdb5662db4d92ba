"""Logging configuration for the desktop app."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "dictapad.log"


def default_logs_dir() -> Path:
    return Path.home() / ".config" / "dictapad" / "logs"


def setup_logging(logs_dir: Path | None = None, verbose: bool = False) -> Path:
    """Configure the root logger with a rotating file and a console handler.

    Returns the path of the log file.
    """
    logs_dir = logs_dir or default_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s")

    log_file = logs_dir / LOG_FILE_NAME
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.info("Logging initialized: level=%s, file=%s", logging.getLevelName(level), log_file)
    return log_file
