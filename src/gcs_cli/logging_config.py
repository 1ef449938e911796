"""
Logging configuration for the Globus Connect Server CLI.

All records go to stderr so command output on stdout stays machine-readable.
Provides an optional JSON output format and operation timing.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from typing import Optional

ROOT_LOGGER = "gcs_cli"
# Attributes passed through ``extra=`` that the JSON output keeps.
EXTRA_FIELDS = ("duration_ms", "operation", "profile")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging output."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(
    level: str = "WARNING",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the CLI.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, output logs as JSON
        log_file: Optional file path to write logs to
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Remove existing handlers
    root_logger.handlers.clear()

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the gcs_cli prefix."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


@contextmanager
def log_duration(logger: logging.Logger, operation: str, level: int = logging.DEBUG):
    """
    Context manager to log operation duration.

    Usage:
        with log_duration(logger, "save token"):
            store.save(profile, token)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.log(
            level,
            f"{operation} completed in {duration_ms:.2f}ms",
            extra={"duration_ms": duration_ms, "operation": operation},
        )
