"""
Centralized logging configuration for mprishub.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from mprishub.config import LoggingConfig, get_data_dir


def get_log_file_path() -> Path:
    return get_data_dir() / "mprishub.log"


def setup_logging(
    level: str = "INFO",
    log_file_path: Path | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console_output: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file_path: Log file (default: ~/.local/share/mprishub/mprishub.log)
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
        console_output: Also log to stderr
    """
    log_file = log_file_path if log_file_path else get_log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
        console_handler.setFormatter(logging.Formatter(fmt="%(levelname)s: %(message)s"))
        root_logger.addHandler(console_handler)

    root_logger.info("Logging initialized: %s (level=%s)", log_file, level)


def setup_logging_from_config(config: LoggingConfig, level: str | None = None) -> None:
    setup_logging(
        level=level or config.level,
        log_file_path=Path(config.log_file).expanduser() if config.log_file else None,
        max_bytes=config.max_file_size_mb * 1024 * 1024,
        backup_count=config.backup_count,
        console_output=config.console_output,
    )
