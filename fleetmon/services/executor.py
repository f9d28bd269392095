"""
Executor Module - command execution abstraction.

Provides the executor interface used by the fleet deployer and the central
stack service, the standardized result model, and a small factory keyed by
executor type.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    """Execution result status."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"


class ExecutorType(str, Enum):
    """Types of executors available."""

    LOCAL = "local"
    SSH = "ssh"


@dataclass
class ExecutionResult:
    """Standardized execution result model."""

    status: ExecutionStatus
    success: bool
    exit_code: Optional[int] = None
    output: str = ""
    error: str = ""
    duration: float = 0.0
    command: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        """Most useful single line for reports: stderr, else stdout."""
        text = (self.error or self.output or "").strip()
        lines = [line for line in text.splitlines() if line.strip()]
        if lines:
            return lines[-1]
        if self.exit_code is not None:
            return f"exit code {self.exit_code}"
        return self.status.value


@dataclass
class ExecutorConfig:
    """Configuration for executor creation."""

    executor_type: ExecutorType
    timeout: float = 30
    retry_attempts: int = 1
    retry_delay: float = 1.0

    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    key_path: Optional[str] = None

    working_directory: Optional[str] = None
    additional_params: Dict[str, Any] = field(default_factory=dict)


class Executor(abc.ABC):
    """Abstract base class for all executors."""

    def __init__(self, config: ExecutorConfig):
        self.config = config
        self._connected = False
        self.last_error: Optional[str] = None

    @abc.abstractmethod
    def connect(self) -> bool:
        """Establish connection to target.

        Returns:
            True if connection successful, False otherwise (see ``last_error``)
        """

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Close connection to target."""

    @abc.abstractmethod
    def execute_command(self, command: str, **kwargs) -> ExecutionResult:
        """Execute a command on the target.

        Args:
            command: Command to execute
            **kwargs: Executor-specific parameters (sudo, timeout, ...)
        """

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Check if executor is available for use."""

    def is_connected(self) -> bool:
        return self._connected

    def _create_result(
        self,
        status: ExecutionStatus,
        success: bool,
        command: Optional[str] = None,
        exit_code: Optional[int] = None,
        output: str = "",
        error: str = "",
        duration: float = 0.0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            status=status,
            success=success,
            command=command,
            exit_code=exit_code,
            output=output,
            error=error,
            duration=duration,
            metadata=metadata or {},
        )


def create_executor(config: ExecutorConfig) -> Executor:
    """Create an executor for ``config.executor_type``."""
    if config.executor_type == ExecutorType.SSH:
        from fleetmon.services.ssh_executor import SSHExecutor

        return SSHExecutor(config)
    if config.executor_type == ExecutorType.LOCAL:
        from fleetmon.services.local_executor import LocalExecutor

        return LocalExecutor(config)
    raise ValueError(f"Unknown executor type: {config.executor_type}")


__all__ = [
    "Executor",
    "ExecutionResult",
    "ExecutorConfig",
    "ExecutionStatus",
    "ExecutorType",
    "create_executor",
]
