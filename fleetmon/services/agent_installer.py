"""
Monitoring agent installers.

Each installer first checks whether the host is already in the desired state
and reports "already running" without touching it; only otherwise does it
install or reconfigure the agent.

- Node Exporter runs as a systemd service listening on the server's
  ``prometheus_port``.
- cAdvisor runs as a Docker container publishing ``cadvisor_port``. Hosts
  without a container runtime are skipped rather than failed.
"""

import logging
from shlex import quote

from fleetmon.models.deployment import DeployStep, StepResult
from fleetmon.models.server_inventory import ServerRecord
from fleetmon.services.executor import Executor
from fleetmon.utils.errors import StepError

logger = logging.getLogger(__name__)

NODE_EXPORTER_VERSION = "1.6.0"
NODE_EXPORTER_SERVICE = "node_exporter"
CADVISOR_IMAGE = "gcr.io/cadvisor/cadvisor:v0.47.0"
CADVISOR_CONTAINER = "cadvisor"

SKIPPED_NO_RUNTIME = "skipped: no runtime"

INSTALL_TIMEOUT = 300

NODE_EXPORTER_UNIT = """[Unit]
Description=Node Exporter
Wants=network-online.target
After=network-online.target

[Service]
User=node_exporter
Group=node_exporter
Type=simple
ExecStart=/usr/local/bin/node_exporter --web.listen-address=:{port}
Restart=on-failure

[Install]
WantedBy=multi-user.target
"""


def node_exporter_install_script(port: int, version: str = NODE_EXPORTER_VERSION) -> str:
    """Shell script that installs or reconfigures node_exporter on ``port``."""
    unit = NODE_EXPORTER_UNIT.format(port=port)
    return "\n".join(
        [
            "set -e",
            'case "$(uname -m)" in aarch64|arm64) arch=arm64 ;; armv7l) arch=armv7 ;; *) arch=amd64 ;; esac',
            f"release=node_exporter-{version}.linux-$arch",
            "if [ ! -x /usr/local/bin/node_exporter ]; then",
            "  id node_exporter >/dev/null 2>&1 || useradd --no-create-home --shell /bin/false node_exporter",
            "  cd /tmp",
            f"  url=https://github.com/prometheus/node_exporter/releases/download/v{version}/$release.tar.gz",
            "  if command -v curl >/dev/null 2>&1; then curl -fsSL -o $release.tar.gz $url; else wget -q $url; fi",
            "  tar xzf $release.tar.gz",
            "  cp $release/node_exporter /usr/local/bin/",
            "  chown node_exporter:node_exporter /usr/local/bin/node_exporter",
            "  rm -rf $release $release.tar.gz",
            "fi",
            f"printf '%s' {quote(unit)} > /etc/systemd/system/{NODE_EXPORTER_SERVICE}.service",
            "systemctl daemon-reload",
            f"systemctl enable {NODE_EXPORTER_SERVICE}",
            f"systemctl restart {NODE_EXPORTER_SERVICE}",
        ]
    )


def cadvisor_run_command(port: int, image: str = CADVISOR_IMAGE) -> str:
    return " ".join(
        [
            "docker run -d",
            f"--name={CADVISOR_CONTAINER}",
            "--restart=always",
            "--volume=/:/rootfs:ro",
            "--volume=/var/run:/var/run:ro",
            "--volume=/sys:/sys:ro",
            "--volume=/var/lib/docker/:/var/lib/docker:ro",
            "--volume=/dev/disk/:/dev/disk:ro",
            f"--publish={port}:8080",
            "--privileged",
            "--device=/dev/kmsg",
            image,
        ]
    )


class NodeExporterInstaller:
    """Ensures the system metrics agent runs on the declared port."""

    step = DeployStep.INSTALL_SYSTEM_AGENT

    def __init__(self, executor: Executor, server: ServerRecord):
        self.executor = executor
        self.server = server

    def is_running(self) -> bool:
        result = self.executor.execute_command(
            f"systemctl is-active --quiet {NODE_EXPORTER_SERVICE}"
        )
        return result.success

    def listens_on_declared_port(self) -> bool:
        flag = quote(f"--web.listen-address=:{self.server.prometheus_port}")
        result = self.executor.execute_command(
            f"systemctl cat {NODE_EXPORTER_SERVICE} | grep -q -- {flag}"
        )
        return result.success

    def ensure(self) -> StepResult:
        port = self.server.prometheus_port
        if self.is_running() and self.listens_on_declared_port():
            return StepResult(
                step=self.step.value,
                success=True,
                message=f"already running on port {port}",
            )

        result = self.executor.execute_command(
            node_exporter_install_script(port), sudo=True, timeout=INSTALL_TIMEOUT
        )
        if not result.success:
            raise StepError(self.step.value, self.server.name, result.message)

        if not self.is_running():
            raise StepError(self.step.value, self.server.name, "service is not active after install")

        logger.info(f"{self.server.name}: node_exporter installed on port {port}")
        return StepResult(
            step=self.step.value,
            success=True,
            changed=True,
            message=f"installed node_exporter {NODE_EXPORTER_VERSION} on port {port}",
        )


class CadvisorInstaller:
    """Ensures the container metrics agent runs where a runtime exists."""

    step = DeployStep.INSTALL_CONTAINER_AGENT

    def __init__(self, executor: Executor, server: ServerRecord):
        self.executor = executor
        self.server = server

    def has_runtime(self) -> bool:
        return self.executor.execute_command("command -v docker").success

    def is_running(self) -> bool:
        result = self.executor.execute_command(
            "docker ps --filter "
            + quote(f"name=^{CADVISOR_CONTAINER}$")
            + " --format '{{.Names}}'"
        )
        if not result.success:
            raise StepError(self.step.value, self.server.name, f"docker ps failed: {result.message}")
        return CADVISOR_CONTAINER in result.output.split()

    def publishes_declared_port(self) -> bool:
        result = self.executor.execute_command(f"docker port {CADVISOR_CONTAINER} 8080/tcp")
        if not result.success:
            return False
        # One "address:port" binding per line, e.g. 0.0.0.0:8080 and [::]:8080.
        published = {line.rsplit(":", 1)[-1] for line in result.output.split()}
        return str(self.server.cadvisor_port) in published

    def ensure(self) -> StepResult:
        if not self.has_runtime():
            logger.warning(
                f"{self.server.name}: docker_enabled is set but no container runtime was found"
            )
            return StepResult(
                step=self.step.value,
                success=True,
                skipped=True,
                message=SKIPPED_NO_RUNTIME,
            )

        port = self.server.cadvisor_port
        if self.is_running():
            if self.publishes_declared_port():
                return StepResult(step=self.step.value, success=True, message="already running")
            logger.info(f"{self.server.name}: cAdvisor is not published on port {port}, recreating")

        # A stopped or misconfigured container with the same name would block `docker run`.
        self.executor.execute_command(f"docker rm -f {CADVISOR_CONTAINER}")
        result = self.executor.execute_command(cadvisor_run_command(port), timeout=INSTALL_TIMEOUT)
        if not result.success:
            raise StepError(self.step.value, self.server.name, result.message)

        logger.info(f"{self.server.name}: cAdvisor started on port {port}")
        return StepResult(
            step=self.step.value,
            success=True,
            changed=True,
            message=f"started cAdvisor on port {port}",
        )
