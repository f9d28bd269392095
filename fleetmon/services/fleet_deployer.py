"""
Fleet deployer.

Brings every server's monitoring agents in line with its capability flags.
Each server runs through the same step sequence

    check_connectivity -> configure_firewall
        -> install_system_agent      (if system_monitoring)
        -> install_container_agent   (if docker_enabled)

where every step only starts if the previous one succeeded. Servers are
deployed on a bounded thread pool; a failure only marks that server FAILED
and the run always completes for every other server.

Time is bounded per server: every remote command's timeout is capped by the
time left before the server's deadline, and once the deadline has passed no
further step is started. Cancelling a run stops servers that have not started
yet; servers already in flight still run their remaining steps, within their
deadline.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Tuple

from fleetmon.models.deployment import (
    DeployState,
    DeployStep,
    DeploymentOutcome,
    DeploymentReport,
    StepResult,
)
from fleetmon.models.server_inventory import ServerRecord
from fleetmon.services.agent_installer import CadvisorInstaller, NodeExporterInstaller
from fleetmon.services.executor import ExecutionResult, ExecutionStatus, Executor
from fleetmon.services.firewall_manager import FirewallManager, rules_for_server
from fleetmon.services.ssh_executor import SSHExecutor, ssh_config_for
from fleetmon.utils.errors import ConnectivityError, FleetmonError
from fleetmon.utils.logging_config import get_logger
from fleetmon.utils.settings import Settings

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[ServerRecord], Executor]

CANCELLED_MESSAGE = "cancelled"


def ssh_executor_factory(settings: Settings, strict_host_keys: bool = True) -> ExecutorFactory:
    """Factory creating one SSH session per server from its inventory record."""

    def factory(server: ServerRecord) -> Executor:
        return SSHExecutor(
            ssh_config_for(
                host=server.hostname,
                username=server.ssh_user,
                key_path=server.ssh_key,
                timeout=settings.ssh_timeout,
                strict_host_keys=strict_host_keys,
            )
        )

    return factory


class DeadlineExecutor(Executor):
    """Wraps a session so no command can run past the server's deadline."""

    def __init__(
        self,
        inner: Executor,
        deadline: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        # Connection state and last_error belong to the inner session.
        self.config = inner.config
        self.inner = inner
        self.deadline = deadline
        self.clock = clock

    @property
    def remaining(self) -> float:
        return self.deadline - self.clock()

    @property
    def last_error(self) -> Optional[str]:
        return self.inner.last_error

    def is_available(self) -> bool:
        return self.inner.is_available()

    def is_connected(self) -> bool:
        return self.inner.is_connected()

    def connect(self) -> bool:
        return self.inner.connect()

    def disconnect(self) -> None:
        self.inner.disconnect()

    def execute_command(self, command: str, **kwargs) -> ExecutionResult:
        remaining = self.remaining
        if remaining <= 0:
            return self._create_result(
                status=ExecutionStatus.TIMEOUT,
                success=False,
                command=command,
                error="server deadline exceeded",
            )
        requested = kwargs.get("timeout", self.inner.config.timeout)
        kwargs["timeout"] = min(requested, remaining) if requested else remaining
        return self.inner.execute_command(command, **kwargs)


class ServerDeployment:
    """Runs the provisioning state machine for one server."""

    def __init__(
        self,
        server: ServerRecord,
        executor_factory: ExecutorFactory,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.server = server
        self.executor_factory = executor_factory
        self.settings = settings
        self.clock = clock
        self.log = get_logger(__name__, server.name)

    def plan(self) -> List[Tuple[DeployStep, Callable[[Executor], StepResult]]]:
        steps = [
            (DeployStep.CHECK_CONNECTIVITY, self.check_connectivity),
            (DeployStep.CONFIGURE_FIREWALL, self.configure_firewall),
        ]
        if self.server.system_monitoring:
            steps.append((DeployStep.INSTALL_SYSTEM_AGENT, self.install_system_agent))
        if self.server.docker_enabled:
            steps.append((DeployStep.INSTALL_CONTAINER_AGENT, self.install_container_agent))
        return steps

    def check_connectivity(self, session: Executor) -> StepResult:
        if not session.connect():
            raise ConnectivityError(self.server.name, session.last_error or "connection failed")
        result = session.execute_command("echo 'SSH connection successful'")
        if not result.success:
            raise ConnectivityError(self.server.name, f"test command failed: {result.message}")
        return StepResult(
            step=DeployStep.CHECK_CONNECTIVITY.value,
            success=True,
            message=f"connected to {self.server.hostname}",
        )

    def configure_firewall(self, session: Executor) -> StepResult:
        rules = rules_for_server(self.server, self.settings.monitoring_network)
        change = FirewallManager(session, self.server.name).ensure_rules(rules)
        return StepResult(
            step=DeployStep.CONFIGURE_FIREWALL.value,
            success=True,
            changed=change.changed,
            message=change.describe(),
        )

    def install_system_agent(self, session: Executor) -> StepResult:
        return NodeExporterInstaller(session, self.server).ensure()

    def install_container_agent(self, session: Executor) -> StepResult:
        return CadvisorInstaller(session, self.server).ensure()

    def run(self) -> DeploymentOutcome:
        outcome = DeploymentOutcome(server=self.server.name)
        budget = self.settings.server_timeout
        deadline = self.clock() + budget
        session = DeadlineExecutor(self.executor_factory(self.server), deadline, self.clock)

        try:
            for step, action in self.plan():
                if self.clock() >= deadline:
                    outcome.record(
                        StepResult(
                            step=step.value,
                            success=False,
                            message=f"server timeout of {budget:g}s exceeded",
                        )
                    )
                    break

                started = self.clock()
                try:
                    result = action(session)
                except FleetmonError as e:
                    result = StepResult(step=step.value, success=False, message=e.message)
                except Exception as e:
                    self.log.error(f"unexpected error during {step.value}: {e!r}")
                    result = StepResult(
                        step=step.value, success=False, message=f"unexpected error: {e}"
                    )
                result.duration = self.clock() - started
                outcome.record(result)

                if result.success:
                    self.log.info(f"{step.value}: {result.message}")
                else:
                    self.log.error(f"{step.value} failed: {result.message}")
                    break
        finally:
            session.disconnect()

        outcome.finish()
        return outcome


class FleetDeployer:
    """Deploys monitoring agents to many servers with bounded parallelism."""

    def __init__(
        self,
        executor_factory: Optional[ExecutorFactory] = None,
        settings: Optional[Settings] = None,
        max_parallel: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self.executor_factory = executor_factory or ssh_executor_factory(self.settings)
        self.max_parallel = max(1, max_parallel or self.settings.max_parallel)
        self.clock = clock
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._outcomes: List[DeploymentOutcome] = []

    def cancel(self) -> None:
        """Stop starting new servers; in-flight ones run to completion."""
        if not self._cancel.is_set():
            logger.warning("Cancellation requested; no further servers will be started")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _collect(self, outcome: DeploymentOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    def _deploy_one(self, server: ServerRecord) -> None:
        if self._cancel.is_set():
            outcome = DeploymentOutcome(server=server.name)
            outcome.record(
                StepResult(step=DeployState.PENDING.value, success=False, message=CANCELLED_MESSAGE)
            )
            outcome.finish()
            self._collect(outcome)
            return

        deployment = ServerDeployment(server, self.executor_factory, self.settings, self.clock)
        try:
            outcome = deployment.run()
        except Exception as e:
            # e.g. the executor factory itself failed; keep siblings running.
            logger.error(f"{server.name}: deployment aborted: {e!r}")
            outcome = DeploymentOutcome(server=server.name)
            outcome.record(
                StepResult(
                    step=DeployStep.CHECK_CONNECTIVITY.value,
                    success=False,
                    message=f"unexpected error: {e}",
                )
            )
            outcome.finish()
        self._collect(outcome)

    def deploy(self, servers: Iterable[ServerRecord]) -> DeploymentReport:
        """Deploy to every server and return the outcome of each."""
        servers = list(servers)
        self._outcomes = []
        logger.info(
            f"Deploying monitoring agents to {len(servers)} server(s), "
            f"{self.max_parallel} at a time"
        )

        with ThreadPoolExecutor(
            max_workers=self.max_parallel, thread_name_prefix="fleetmon-deploy"
        ) as pool:
            futures = [pool.submit(self._deploy_one, server) for server in servers]
            for future in futures:
                future.result()

        order = {server.name: index for index, server in enumerate(servers)}
        with self._lock:
            outcomes = sorted(self._outcomes, key=lambda o: order.get(o.server, len(order)))

        report = DeploymentReport(outcomes=outcomes, cancelled=self.cancelled)
        logger.info(
            f"Deployment finished: {len(report.succeeded)} done, {len(report.failed)} failed"
        )
        return report
