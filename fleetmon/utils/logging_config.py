"""
Logging configuration for fleetmon.

Diagnostics go to stderr through the standard logging tree; per-host work
uses a SystemLogger carrying the server name as correlation id so interleaved
output from parallel deployments stays attributable.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_NOISY_LOGGERS = ("paramiko", "paramiko.transport", "httpx", "httpcore")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once for CLI use."""
    log_level = (level or os.getenv("LOG_LEVEL", "WARNING")).upper()

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.WARNING))

    if not any(getattr(h, "_fleetmon", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._fleetmon = True
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class SystemLogger:
    """Logger wrapper that prefixes every message with a correlation ID."""

    def __init__(self, name: str, correlation_id: Optional[str] = None):
        self.name = name
        self.correlation_id = correlation_id or "fleet"
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, *args) -> None:
        self._logger.log(level, f"[{self.correlation_id}] {message}", *args)

    def debug(self, message: str, *args) -> None:
        self._log(logging.DEBUG, message, *args)

    def info(self, message: str, *args) -> None:
        self._log(logging.INFO, message, *args)

    def warning(self, message: str, *args) -> None:
        self._log(logging.WARNING, message, *args)

    def error(self, message: str, *args) -> None:
        self._log(logging.ERROR, message, *args)


def get_logger(name: str, correlation_id: Optional[str] = None) -> SystemLogger:
    """Get a standardized logger instance."""
    return SystemLogger(name, correlation_id)
