"""Logging setup for the CLI, HTTP service and console."""
from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ROOT_LOGGER = "toll_engine"


def configure_logging(level: str | int = "INFO", log_dir: Path | None = None, backup_count: int = 7) -> logging.Logger:
    """Attach a stream handler (and optionally a daily rotating file) to the package logger.

    Safe to call repeatedly: existing handlers are replaced rather than duplicated.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = TimedRotatingFileHandler(
            log_dir / "toll_engine.log",
            when="midnight",
            interval=1,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.suffix = "%d_%m_%Y"
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
