"""
Central monitoring stack (Prometheus, Grafana, Alertmanager) on the local host.

The stack is started with ``docker-compose up -d`` from the configured
compose file. It is expected to run on the inventory's monitoring server
(``role: monitoring``); running it elsewhere only produces a warning.
Health covers the HTTP endpoints and the local containers of the stack.
"""

import logging
import os
import shutil
import socket
from typing import Callable, List, Optional

import httpx

from fleetmon.models.server_inventory import ServerRecord
from fleetmon.services.executor import ExecutionResult, Executor, ExecutorConfig, ExecutorType
from fleetmon.services.local_executor import LocalExecutor
from fleetmon.services.verifier import CentralHealth, check_central_stack
from fleetmon.utils.errors import CentralStackError
from fleetmon.utils.settings import Settings

logger = logging.getLogger(__name__)

MONITORING_ROLE = "monitoring"
COMPOSE_TIMEOUT = 600
CONTAINER_CHECK_TIMEOUT = 30

CENTRAL_CONTAINERS = ("prometheus", "grafana", "alertmanager", "node-exporter", "cadvisor")


def compose_base_command() -> List[str]:
    """``docker-compose`` when installed, otherwise the ``docker compose`` plugin."""
    if shutil.which("docker-compose"):
        return ["docker-compose"]
    return ["docker", "compose"]


def _short(hostname: str) -> str:
    return hostname.split(".", 1)[0].lower()


class CentralStack:
    """Starts and health-checks the central monitoring services."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[Executor] = None,
        local_hostname: Callable[[], str] = socket.gethostname,
    ):
        self.settings = settings or Settings()
        self.executor = executor or LocalExecutor(
            ExecutorConfig(executor_type=ExecutorType.LOCAL, timeout=COMPOSE_TIMEOUT)
        )
        self.local_hostname = local_hostname

    @staticmethod
    def monitoring_server(servers) -> Optional[ServerRecord]:
        for server in servers:
            if server.role == MONITORING_ROLE:
                return server
        return None

    def check_host(self, servers) -> bool:
        """Warn unless this machine is the inventory's monitoring server."""
        server = self.monitoring_server(servers)
        if server is None:
            logger.warning("No server with role 'monitoring' in the inventory")
            return False
        current = self.local_hostname()
        if _short(current) != _short(server.hostname):
            logger.warning(
                f"The central stack should run on the monitoring server ({server.hostname}); "
                f"current hostname is {current}"
            )
            return False
        return True

    def deploy(self, servers=()) -> ExecutionResult:
        """Bring the stack up; raises CentralStackError on failure."""
        compose_file = os.path.abspath(self.settings.compose_file)
        if not os.path.isfile(compose_file):
            raise CentralStackError(f"{self.settings.compose_file} not found")

        self.check_host(servers)

        base = compose_base_command()
        command = base + ["-f", compose_file, "up", "-d"]
        logger.info(f"Deploying central monitoring with {' '.join(base)}")
        result = self.executor.execute_command(
            command, cwd=os.path.dirname(compose_file), timeout=COMPOSE_TIMEOUT
        )
        if not result.success:
            raise CentralStackError(f"{' '.join(base)} up failed: {result.message}")
        logger.info("Central monitoring stack deployed")
        return result

    def missing_containers(self) -> List[str]:
        """Central containers that ``docker ps`` does not list as running."""
        result = self.executor.execute_command(
            ["docker", "ps", "--format", "{{.Names}}"], timeout=CONTAINER_CHECK_TIMEOUT
        )
        if not result.success:
            raise CentralStackError(f"docker ps failed: {result.message}")
        running = set(result.output.split())
        missing = [name for name in CENTRAL_CONTAINERS if name not in running]
        for name in CENTRAL_CONTAINERS:
            if name in missing:
                logger.error(f"Container {name} is not running")
            else:
                logger.info(f"Container {name} is running")
        return missing

    def health(self, transport: Optional[httpx.BaseTransport] = None) -> CentralHealth:
        health = check_central_stack(self.settings, transport=transport)
        try:
            health.missing_containers = self.missing_containers()
        except CentralStackError as e:
            health.containers_error = e.message
            logger.error(e.message)
        return health
