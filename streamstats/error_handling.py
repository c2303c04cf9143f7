"""
Error Handling & Logging Infrastructure

Logger setup, the engine's exception types, and the decorator that turns a
failing file parse into a logged, zero-contribution result.
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Optional, Callable, Any

LOGGER_NAME = "streamstats"

_logger = None


class StreamStatsError(Exception):
    """Base class for errors raised by the engine."""
    pass


class NoValidDataError(StreamStatsError):
    """Raised when a whole batch of files yields no canonical play events."""

    def __init__(self, message: str = "No valid data found in the uploaded files"):
        super().__init__(message)


class ConfigurationError(StreamStatsError):
    """Exception for configuration-related errors."""
    pass


class MalformedFileError(StreamStatsError):
    """Raised by an adapter when a whole document cannot be parsed."""

    def __init__(self, file_name: str, reason: Any):
        super().__init__(f"Could not parse {file_name}: {reason}")
        self.file_name = file_name


class UnsupportedQueryError(StreamStatsError, ValueError):
    """Raised for an unknown sort key or grouping kind."""
    pass


def setup_logging(log_dir: Optional[Path] = None, log_level: str = "INFO") -> logging.Logger:
    """
    Set up logging for the application.

    Args:
        log_dir: Directory for log files (console only when None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    global _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Avoid duplicate handlers
    if logger.handlers:
        _logger = logger
        return logger

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"streamstats_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the package logger (handlers are left to the application)."""
    global _logger
    if _logger is None:
        _logger = logging.getLogger(LOGGER_NAME)
    return _logger


def handle_errors(
    reraise: bool = False,
    default_return: Callable[[], Any] = None,
    exceptions: tuple = (Exception,),
    log_error: bool = True
):
    """
    Decorator for recoverable failures.

    Args:
        reraise: If True, re-raise the exception after logging
        default_return: Factory for the value returned on error (if not reraise)
        exceptions: Exception types treated as recoverable
        log_error: If True, log the error
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                if log_error:
                    get_logger().warning(
                        f"Recoverable error in {func.__qualname__}: {e}"
                    )
                if reraise:
                    raise
                return default_return() if default_return is not None else None
        return wrapper
    return decorator


@contextmanager
def timed_step(step_name: str):
    """Context manager to time and log execution of a step."""
    logger = get_logger()
    start_time = time.perf_counter()
    logger.debug(f"[START] {step_name}")
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start_time
        logger.debug(f"[END] {step_name} (took {elapsed:.2f}s)")
