"""
Logging Configuration Module

Provides standardized logging with:
- Consistent log format across all modules
- Request ID tracking for correlating one emitter session
- Console and optional rotating file output

Usage:
    from core.logging_config import setup_logging, get_logger

    # Setup at application startup
    setup_logging(level="INFO", log_dir="logs")

    # Get a logger in any module
    logger = get_logger(__name__)
    logger.info("Emitter started")
"""

import logging
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Global request ID for the application session
_request_id: str = ""

LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(threadName)s] - [%(filename)s:%(lineno)d] - "
    "[request_id=%(request_id)s] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def generate_request_id() -> str:
    """Generate a new UUID request ID."""
    global _request_id
    _request_id = str(uuid.uuid4())
    return _request_id


def get_request_id() -> str:
    """Get the current request ID."""
    global _request_id
    if not _request_id:
        generate_request_id()
    return _request_id


class RequestIdFilter(logging.Filter):
    """Filter that adds request_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to log levels for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        result = super().format(record)

        # Restore original level name for other handlers
        record.levelname = levelname
        return result


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5,
    colored_console: bool = True
) -> logging.Logger:
    """
    Setup application logging with standardized format.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files; file logging is off when None
        log_file: Log filename (default: device-emitter.log)
        max_size_mb: Maximum log file size before rotation
        backup_count: Number of backup log files to keep
        colored_console: Colorize level names when stdout is a terminal

    Returns:
        Configured root logger
    """
    generate_request_id()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    request_id_filter = RequestIdFilter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    if colored_console and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    else:
        console_handler.setFormatter(formatter)
    console_handler.addFilter(request_id_filter)
    root_logger.addHandler(console_handler)

    # File handler with rotation
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / (log_file or "device-emitter.log"),
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(request_id_filter)
        root_logger.addHandler(file_handler)

    # aiokafka is chatty at INFO during connect/reconnect cycles
    logging.getLogger("aiokafka").setLevel(max(root_logger.level, logging.WARNING))

    root_logger.info(f"Logging initialized - level={level}, request_id={get_request_id()}")
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
