"""
Local executor implementation for local command execution.
"""

import logging
import shlex
import subprocess
import time
from typing import List, Union

from fleetmon.services.executor import (
    ExecutionResult,
    ExecutionStatus,
    Executor,
    ExecutorConfig,
)

logger = logging.getLogger(__name__)


class LocalExecutor(Executor):
    """Runs commands on the machine fleetmon itself runs on."""

    def __init__(self, config: ExecutorConfig):
        super().__init__(config)

    def is_available(self) -> bool:
        return True

    def connect(self) -> bool:
        self._connected = True
        return True

    def disconnect(self) -> None:
        self._connected = False

    def execute_command(self, command: Union[str, List[str]], **kwargs) -> ExecutionResult:
        """Execute command locally without a shell.

        Args:
            command: Command string (split with shlex) or argument list
            **kwargs: ``cwd``, ``env``, ``timeout``
        """
        cwd = kwargs.get("cwd", self.config.working_directory)
        env = kwargs.get("env")
        timeout = kwargs.get("timeout", self.config.timeout)
        cmd_list = shlex.split(command) if isinstance(command, str) else list(command)
        display = command if isinstance(command, str) else shlex.join(cmd_list)

        start_time = time.time()
        try:
            process = subprocess.run(
                cmd_list,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return self._create_result(
                status=ExecutionStatus.TIMEOUT,
                success=False,
                command=display,
                duration=time.time() - start_time,
                error=f"Command timed out after {timeout} seconds",
            )
        except OSError as e:
            return self._create_result(
                status=ExecutionStatus.FAILURE,
                success=False,
                command=display,
                duration=time.time() - start_time,
                error=str(e),
            )

        return self._create_result(
            status=ExecutionStatus.SUCCESS if process.returncode == 0 else ExecutionStatus.FAILURE,
            success=process.returncode == 0,
            command=display,
            exit_code=process.returncode,
            output=process.stdout.strip(),
            error=process.stderr.strip(),
            duration=time.time() - start_time,
            metadata={"cwd": cwd},
        )
