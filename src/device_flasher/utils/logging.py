"""Rotating logger setup for flashing runs."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"
CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"
CONSOLE_DATEFMT = "%H:%M:%S"


def console_level_for(verbose: bool = False, quiet: bool = False) -> int:
    """Map the CLI verbosity flags to a console level; quiet wins."""
    if quiet:
        return logging.WARNING
    if verbose:
        return logging.DEBUG
    return logging.INFO


def setup_logger(
    name: str = "device_flasher",
    log_file: str = "./logs/device-flasher.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 3,
    level: int = logging.INFO,
    console_level: Optional[int] = None,
) -> logging.Logger:
    """Setup the run log: a rotating file plus the operator's console.

    The file keeps full ISO 8601 timestamps and logger names; the console
    shows a compact line at its own level.

    Args:
        name: Logger name (component loggers are children of it)
        log_file: Path to log file (created if doesn't exist)
        max_bytes: Max size before rotation
        backup_count: Number of rotated files to keep
        level: File handler level
        console_level: Console handler level (defaults to ``level``)

    Returns:
        Configured logger instance
    """
    if console_level is None:
        console_level = level

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(min(level, console_level))

    if logger.handlers:
        return logger

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATEFMT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT)
    )

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
