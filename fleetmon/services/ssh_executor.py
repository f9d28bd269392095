"""
SSH executor for remote provisioning over paramiko.
"""

import logging
import os
import socket
import time
from shlex import quote
from typing import Optional

import paramiko

from fleetmon.services.executor import (
    ExecutionResult,
    ExecutionStatus,
    Executor,
    ExecutorConfig,
    ExecutorType,
)

logger = logging.getLogger(__name__)


class SSHExecutor(Executor):
    """SSH executor for remote target operations."""

    def __init__(self, config: ExecutorConfig):
        """Initialize SSH executor.

        Args:
            config: Executor configuration. ``additional_params`` may carry
                ``strict_host_keys`` (default True) and ``known_hosts_file``.
        """
        super().__init__(config)
        self.host = config.host
        self.port = config.port or 22
        self.username = config.username
        self.key_path = config.key_path
        self.strict_host_keys = config.additional_params.get("strict_host_keys", True)
        self.known_hosts_file = os.path.expanduser(
            config.additional_params.get("known_hosts_file", "~/.ssh/known_hosts")
        )
        self.client: Optional[paramiko.SSHClient] = None

    def is_available(self) -> bool:
        return bool(self.host and self.username)

    def _resolve_key_path(self) -> Optional[str]:
        """Expand ``~`` and ``$VAR`` references in the configured key path."""
        if not self.key_path:
            return None
        key_path = self.key_path
        if key_path.startswith("$"):
            key_path = os.getenv(key_path[1:], "")
        key_path = os.path.expanduser(os.path.expandvars(key_path))
        # Accept a .pub path and use the matching private key.
        if key_path.endswith(".pub") and os.path.exists(key_path[:-4]):
            key_path = key_path[:-4]
        return key_path or None

    def connect(self) -> bool:
        """Open the SSH session, bounded by the configured timeout.

        Returns:
            True if connection successful, False otherwise.
        """
        key_path = self._resolve_key_path()
        if key_path and not os.access(key_path, os.R_OK):
            self.last_error = f"SSH key file not readable: {key_path}"
            logger.error(self.last_error)
            return False

        attempts = max(1, self.config.retry_attempts)
        for attempt in range(attempts):
            client = paramiko.SSHClient()
            try:
                client.load_system_host_keys()
                if os.path.exists(self.known_hosts_file):
                    client.load_host_keys(self.known_hosts_file)
                if self.strict_host_keys:
                    client.set_missing_host_key_policy(paramiko.RejectPolicy())
                else:
                    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

                client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    key_filename=key_path,
                    timeout=self.config.timeout,
                    banner_timeout=self.config.timeout,
                    auth_timeout=self.config.timeout,
                    allow_agent=key_path is None,
                    look_for_keys=key_path is None,
                    compress=False,
                    gss_auth=False,
                )
                self.client = client
                self._connected = True
                self.last_error = None
                logger.info(f"SSH connection established to {self.host}:{self.port}")
                return True

            except paramiko.AuthenticationException as e:
                client.close()
                self.last_error = f"authentication failed: {e}"
                logger.warning(f"SSH to {self.host}: {self.last_error}")
                return False

            except (paramiko.SSHException, socket.timeout, OSError) as e:
                client.close()
                self.last_error = str(e) or e.__class__.__name__
                logger.warning(
                    f"SSH connection attempt {attempt + 1} to {self.host} failed: {self.last_error}"
                )
                if attempt < attempts - 1:
                    time.sleep(self.config.retry_delay)

        return False

    def disconnect(self) -> None:
        """Close SSH connection."""
        if self.client:
            self.client.close()
            self.client = None
            logger.info(f"SSH connection closed to {self.host}:{self.port}")
        self._connected = False

    def execute_command(self, command: str, **kwargs) -> ExecutionResult:
        """Execute a shell command on the remote target.

        Args:
            command: Shell command line; callers quote their own arguments
            **kwargs: ``sudo`` (run through ``sudo -n sh -c``), ``timeout``
        """
        if not self._connected or not self.client:
            return self._create_result(
                status=ExecutionStatus.CONNECTION_ERROR,
                success=False,
                command=command,
                error="SSH connection not established",
            )

        sudo = kwargs.get("sudo", False)
        timeout = kwargs.get("timeout", self.config.timeout)
        actual_command = command
        if sudo:
            actual_command = f"sudo -n sh -c {quote(command)}"

        start_time = time.time()
        try:
            stdin, stdout, stderr = self.client.exec_command(actual_command, timeout=timeout)
            stdin.close()
            output = stdout.read().decode("utf-8", errors="replace").strip()
            error_output = stderr.read().decode("utf-8", errors="replace").strip()
            exit_code = stdout.channel.recv_exit_status()
        except socket.timeout:
            return self._create_result(
                status=ExecutionStatus.TIMEOUT,
                success=False,
                command=command,
                duration=time.time() - start_time,
                error=f"Command timed out after {timeout} seconds",
            )
        except (paramiko.SSHException, OSError) as e:
            self._connected = False
            return self._create_result(
                status=ExecutionStatus.CONNECTION_ERROR,
                success=False,
                command=command,
                duration=time.time() - start_time,
                error=str(e),
            )

        return self._create_result(
            status=ExecutionStatus.SUCCESS if exit_code == 0 else ExecutionStatus.FAILURE,
            success=exit_code == 0,
            command=command,
            exit_code=exit_code,
            output=output,
            error=error_output,
            duration=time.time() - start_time,
            metadata={"sudo": sudo, "timeout": timeout},
        )


def ssh_config_for(
    host: str,
    username: Optional[str],
    key_path: Optional[str],
    timeout: float = 30,
    strict_host_keys: bool = True,
) -> ExecutorConfig:
    """Executor configuration for one inventory host."""
    return ExecutorConfig(
        executor_type=ExecutorType.SSH,
        timeout=timeout,
        host=host,
        username=username,
        key_path=key_path,
        additional_params={"strict_host_keys": strict_host_keys},
    )
