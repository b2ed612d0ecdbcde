"""Logging configuration for hinichi."""

import logging
import sys
from typing import Optional

from ..config import get_settings


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        """Format log record with colors."""
        log_color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{log_color}{record.levelname}{self.RESET}"
        return super().format(record)


LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Setup logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file to log to
        use_colors: Whether to use colored output in console
    """
    settings = get_settings()
    log_level = level or settings.log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    if use_colors and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    else:
        console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s',
            datefmt=DATE_FORMAT
        ))
        root_logger.addHandler(file_handler)

    # Set specific log levels for noisy libraries
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)


def log_operation(
    logger: logging.Logger,
    operation: str,
    status: str,
    **context
):
    """
    Log operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., 'resolve_entries', 'generate_summary')
        status: 'started', 'completed', 'degraded', 'failed' or anything else (debug)
        **context: Additional context key-value pairs
    """
    context_str = " | ".join(f"{k}={v}" for k, v in context.items())
    message = f"{operation} | {status}"

    if context_str:
        message = f"{message} | {context_str}"

    if status in ('started', 'completed'):
        logger.info(message)
    elif status == 'degraded':
        logger.warning(message)
    elif status == 'failed':
        logger.error(message)
    else:
        logger.debug(message)
