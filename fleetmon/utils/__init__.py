"""Shared utilities: errors, logging, retry and settings."""

from fleetmon.utils.errors import ErrorCategory, FleetmonError
from fleetmon.utils.logging_config import get_logger, setup_logging
from fleetmon.utils.settings import Settings

__all__ = ["ErrorCategory", "FleetmonError", "Settings", "get_logger", "setup_logging"]
