"""
Logging Configuration Module

Centralized logging setup for the assistant. Console output is colored when
attached to a terminal; a log file can be added through LOG_FILE.

Usage:
    from victor.logger import get_logger

    logger = get_logger(__name__)
    logger.debug("Intent refused", extra={"mode": "SENDING"})
"""

import logging
import sys
from pathlib import Path
from typing import Optional

# Chatty third-party loggers kept at WARNING unless DEBUG is requested
_NOISY_LOGGERS = ("aiohttp", "asyncio", "chess")


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminal output."""

    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[1;31m" # Bold Red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True,
    stream=None,
) -> None:
    """
    Configure the root logger with console and optional file handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        use_colors: Whether to use colored output in console
        stream: Console stream (stderr by default so the chat transcript stays clean)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    stream = stream or sys.stderr

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(numeric_level)

    if use_colors and stream.isatty():
        console_format = ColoredFormatter(
            "%(asctime)s │ %(levelname)s │ %(name)s │ %(message)s",
            datefmt="%H:%M:%S"
        )
    else:
        console_format = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S"
        )

    console_handler.setFormatter(console_format)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        root_logger.addHandler(file_handler)

    if numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Usually __name__ of the calling module
    """
    return logging.getLogger(name)


_initialized = False


def init_logging(level: Optional[str] = None) -> None:
    """
    Initialize logging from settings. Call once at application startup.

    Args:
        level: Overrides LOG_LEVEL when given (e.g. from a --verbose flag)
    """
    global _initialized
    if _initialized:
        return

    try:
        from victor.config import settings
        setup_logging(
            level=level or settings.logging.level,
            log_file=settings.logging.file
        )
    except Exception:
        # Settings unavailable (e.g. malformed .env values)
        setup_logging(level=level or "INFO")

    _initialized = True
