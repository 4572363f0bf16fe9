"""Logging setup: daily rotated file plus stdout, with caller information."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler

LOGGER_NAME = "llmadapter"
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _trim_path(path: str) -> str:
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    if len(parts) <= 2:
        return "/".join(parts)
    return "/".join(parts[-2:])


class CallerFormatter(logging.Formatter):
    """Formats records as ``time [LEVL] <logger> dir/file:line | message``."""

    def __init__(self) -> None:
        super().__init__(datefmt=_TIME_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        root = "main" if record.name == "__main__" else record.name
        caller = f" <{root}> {_trim_path(record.pathname)}:{record.lineno} |"
        message = record.getMessage()
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return f"{timestamp} [{record.levelname[:4]}]{caller} {message}"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def init_logger(base_path: str, level: int | str) -> logging.Logger:
    """Configure the package logger to write to ``base_path`` and stdout."""
    if not base_path:
        base_path = "log"
    os.makedirs(base_path, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = CallerFormatter()
    file_handler = TimedRotatingFileHandler(
        os.path.join(base_path, "background.log"),
        when="midnight",
        backupCount=7,
        encoding="utf-8",
    )
    stream_handler = logging.StreamHandler(sys.stdout)
    for handler in (file_handler, stream_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(_resolve_level(level))
    logger.propagate = False
    return logger