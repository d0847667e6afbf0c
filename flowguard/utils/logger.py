# flowguard/utils/logger.py
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

ROOT_LOGGER = "flowguard"

FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"

# level floor -> ANSI colour, checked top-down
_COLOURS = (
    (logging.ERROR, "\033[91m"),
    (logging.WARNING, "\033[93m"),
    (logging.INFO, "\033[92m"),
)


@dataclass
class LogSettings:
    """Logging knobs; `from_env` reads LOG_LEVEL and FLOWGUARD_LOG_DIR."""
    level: int = logging.INFO
    log_dir: Optional[Path] = None
    file_name: str = "flowguard.log"
    file_max_mb: int = 5
    file_backup: int = 3

    @classmethod
    def from_env(cls) -> "LogSettings":
        raw = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        level = logging.getLevelName(raw)
        log_dir = os.getenv("FLOWGUARD_LOG_DIR")
        return cls(
            level=level if isinstance(level, int) else logging.INFO,
            log_dir=Path(log_dir) if log_dir else None,
        )


class _ColorFormatter(logging.Formatter):
    """Colours whole records by level, only when the target stream is a terminal."""

    def __init__(self, stream: TextIO):
        super().__init__(fmt=FORMAT, datefmt=DATEFMT)
        self._tty = hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if not self._tty:
            return text
        for floor, colour in _COLOURS:
            if record.levelno >= floor:
                return f"{colour}{text}\033[0m"
        return text


def _stream_handler(stream: TextIO, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(_ColorFormatter(stream))
    return handler


def _file_handler(settings: LogSettings) -> logging.Handler:
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(settings.log_dir / settings.file_name),
        maxBytes=settings.file_max_mb * 1024 * 1024,
        backupCount=settings.file_backup,
        encoding="utf-8",
    )
    handler.setLevel(settings.level)
    handler.setFormatter(logging.Formatter(fmt=FORMAT, datefmt=DATEFMT))
    return handler


def init_logger(
    name: str = ROOT_LOGGER,
    level: Optional[int] = None,
    log_dir: Union[str, Path, None] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    (Re)configure a project logger.

    Records go to stderr so stdout stays clean for CLI reports; a rotating
    file is added when `log_dir` (or FLOWGUARD_LOG_DIR) is set. Explicit
    arguments win over the environment. Existing handlers are replaced,
    which is how the CLI switches on file logging after import.
    """
    settings = LogSettings.from_env()
    if level is not None:
        settings.level = level
    if log_dir is not None:
        settings.log_dir = Path(log_dir)

    logger = logging.getLogger(name)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.propagate = False
    logger.setLevel(settings.level)

    logger.addHandler(_stream_handler(stream or sys.stderr, settings.level))
    if settings.log_dir is not None:
        logger.addHandler(_file_handler(settings))
    return logger


def set_level(level: int, name: str = ROOT_LOGGER) -> None:
    """Change the level of a configured logger and all of its handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


log = init_logger()


def get_logger(child: str) -> logging.Logger:
    return logging.getLogger(ROOT_LOGGER).getChild(child)
