"""
Logging configuration for the acceptor controller.

This module provides a centralized logging setup with support for:
- Console output with colored formatting
- File rotation with size limits
- Remote logging to Loki
"""

import logging
import queue
import sys
import time
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Final, Optional

import colorlog
import httpx


# =============================================================================
# Constants
# =============================================================================

PACKAGE_LOGGER: Final[str] = "jcm_acceptor"
DEFAULT_LOG_FORMAT: Final[str] = (
    "%(name)s | %(asctime)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s"
)
DEFAULT_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
MAX_LOG_FILE_SIZE: Final[int] = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT: Final[int] = 3
LOKI_TIMEOUT: Final[float] = 2.0

LOG_COLORS: Final[dict[str, str]] = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

_loki_listener: Optional[QueueListener] = None


# =============================================================================
# Loki Integration
# =============================================================================

def send_to_loki(url: str, level: str, message: str, app: str) -> None:
    """
    Send a log entry to Loki.

    Args:
        url: Loki push endpoint.
        level: Log level name.
        message: Formatted log message.
        app: Application name for Loki labels.
    """
    log_entry = {
        "streams": [
            {
                "stream": {"level": level, "app": app},
                "values": [[str(int(time.time() * 1e9)), message]],
            }
        ]
    }
    with httpx.Client() as client:
        client.post(url, json=log_entry, timeout=LOKI_TIMEOUT)


class LokiHandler(logging.Handler):
    """
    Logging handler that pushes records to Loki.

    Attributes:
        url: Loki push endpoint.
        app: Application name for Loki labels.
    """

    def __init__(self, url: str, app: str) -> None:
        super().__init__()
        self.url = url
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            send_to_loki(self.url, record.levelname.upper(), message, self.app)
        except Exception:
            self.handleError(record)


# =============================================================================
# Logger Setup
# =============================================================================

def shutdown_logging() -> None:
    """Flush pending Loki entries and stop the background sender."""
    global _loki_listener
    if _loki_listener is not None:
        _loki_listener.stop()
        for handler in _loki_listener.handlers:
            handler.close()
        _loki_listener = None


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    loki_url: Optional[str] = None,
    app: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Configure the package logger with console, file, and Loki handlers.

    Calling it again replaces the handlers installed by the previous call.
    Loki entries are queued and pushed from a listener thread, so the
    event loop never waits on the HTTP request.

    Args:
        level: Logging level.
        log_file: Rotating log file path (disabled if None).
        loki_url: Loki push endpoint (disabled if None).
        app: Application name for Loki labels.

    Returns:
        Configured package logger.
    """
    global _loki_listener

    logger_instance = logging.getLogger(PACKAGE_LOGGER)
    logger_instance.setLevel(level)

    for handler in list(logger_instance.handlers):
        logger_instance.removeHandler(handler)
        handler.close()
    shutdown_logging()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        "%(name)s | %(log_color)s%(asctime)s | %(levelname)s | "
        "%(funcName)s:%(lineno)d | %(message)s",
        datefmt=DEFAULT_DATE_FORMAT,
        log_colors=LOG_COLORS,
    ))
    logger_instance.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_LOG_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            fmt=DEFAULT_LOG_FORMAT,
            datefmt=DEFAULT_DATE_FORMAT,
        ))
        logger_instance.addHandler(file_handler)

    if loki_url:
        loki_handler = LokiHandler(loki_url, app)
        loki_handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
            datefmt=DEFAULT_DATE_FORMAT,
        ))
        log_queue: queue.Queue = queue.Queue(-1)
        queue_handler = QueueHandler(log_queue)
        # Only warnings and above are pushed to Loki
        queue_handler.setLevel(max(level, logging.WARNING))
        logger_instance.addHandler(queue_handler)

        _loki_listener = QueueListener(log_queue, loki_handler)
        _loki_listener.start()

    return logger_instance
