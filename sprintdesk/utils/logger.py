"""
Logging configuration for SprintDesk.
Backend calls, store mutations, rollbacks and realtime deliveries all log under
the ``sprintdesk`` logger hierarchy.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler

ROOT_LOGGER_NAME = "sprintdesk"

# Chatty transport loggers; their request lines duplicate our own
_QUIET_LIBRARIES = ("httpx", "httpcore", "aiosqlite")


class ColoredFormatter(logging.Formatter):
    """Console formatter that tints the level name."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        # Copy so the file handler keeps the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname)
        if color and sys.stderr.isatty():
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _default_log_path() -> Path:
    log_dir = Path(__file__).resolve().parents[2] / "logs"
    log_dir.mkdir(exist_ok=True)
    return log_dir / "sprintdesk.log"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    console_level: Optional[str] = "WARNING",
) -> logging.Logger:
    """
    Configure the SprintDesk logger with a rotating file and a console handler.

    Args:
        name: Logger name
        log_level: Level of the logger and its file handler
        log_file: Path to log file. If None, ``logs/sprintdesk.log`` in the project root
        console_level: Level of the stderr handler; None disables console output

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    if log_file is None:
        log_path = _default_log_path()
    else:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8')
    file_handler.setLevel(logger.level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    logger.addHandler(file_handler)

    if console_level:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, console_level.upper(), logging.WARNING))
        console_handler.setFormatter(ColoredFormatter('%(asctime)s | %(levelname)-8s | %(message)s', datefmt='%H:%M:%S'))
        logger.addHandler(console_handler)

    for library in _QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)

    logger.debug(f"Logger initialized. Log file: {log_path}")
    return logger


_configured = False


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Logger ``name`` under the ``sprintdesk`` hierarchy, configuring it on first use."""
    global _configured
    if not _configured:
        from ..config import settings

        setup_logger(
            ROOT_LOGGER_NAME,
            log_level=settings.log_level,
            log_file=settings.log_file,
            console_level=settings.log_console_level,
        )
        _configured = True
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
