"""
Firewall management on managed hosts through UFW.

Rules are only ever added. Existing rules, including ones fleetmon knows
nothing about, are left in place. Rules already present are detected from
``ufw show added`` (which lists rules whether or not the firewall is active)
and not re-added. SSH is allowed before UFW is enabled so the session that is
configuring the firewall cannot lock itself out.
"""

import logging
import re
from dataclasses import dataclass, field
from shlex import quote
from typing import List, Optional

from fleetmon.models.deployment import DeployStep
from fleetmon.models.server_inventory import Capability, ServerRecord
from fleetmon.services.executor import Executor
from fleetmon.utils.errors import StepError

logger = logging.getLogger(__name__)

SSH_PORT = 22

CAPABILITY_COMMENTS = {
    Capability.SYSTEM: "Node Exporter",
    Capability.CONTAINER: "cAdvisor",
}


@dataclass(frozen=True)
class FirewallRule:
    """An inbound allow rule."""

    port: int
    protocol: str = "tcp"
    source: Optional[str] = None
    comment: Optional[str] = None

    def ufw_command(self) -> str:
        if self.source:
            cmd = f"ufw allow from {quote(self.source)} to any port {self.port} proto {self.protocol}"
        else:
            cmd = f"ufw allow {self.port}/{self.protocol}"
        if self.comment:
            cmd += f" comment {quote(self.comment)}"
        return cmd

    def _pattern(self) -> "re.Pattern":
        if self.source:
            return re.compile(
                rf"allow\s+from\s+{re.escape(self.source)}\s+to\s+any\s+port\s+{self.port}"
                rf"(\s+proto\s+{self.protocol})?(\s|$)"
            )
        return re.compile(rf"allow\s+{self.port}(/{self.protocol})?(\s|$)")

    def present_in(self, added_rules: str) -> bool:
        pattern = self._pattern()
        return any(pattern.search(line.strip()) for line in added_rules.splitlines())

    def __str__(self) -> str:
        where = f" from {self.source}" if self.source else ""
        return f"{self.port}/{self.protocol}{where}"


@dataclass
class FirewallChange:
    """What ensure_rules did on one host."""

    added: List[FirewallRule] = field(default_factory=list)
    existing: List[FirewallRule] = field(default_factory=list)
    enabled: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.added) or self.enabled

    def describe(self) -> str:
        if not self.changed:
            return f"already satisfied ({len(self.existing)} rule(s) present)"
        parts = []
        if self.added:
            parts.append("added " + ", ".join(str(rule) for rule in self.added))
        if self.enabled:
            parts.append("enabled ufw")
        return "; ".join(parts)


def rules_for_server(server: ServerRecord, monitoring_network: str) -> List[FirewallRule]:
    """SSH plus one scoped rule per metrics port the server exposes."""
    rules = [FirewallRule(port=SSH_PORT, comment="SSH")]
    for capability in server.capabilities():
        port = server.port_for(capability)
        if port is None:
            continue
        rules.append(
            FirewallRule(
                port=port,
                source=monitoring_network,
                comment=CAPABILITY_COMMENTS.get(capability, capability.value),
            )
        )
    return rules


class FirewallManager:
    """Ensures UFW rules on a remote host through an executor."""

    def __init__(self, executor: Executor, server_name: str):
        self.executor = executor
        self.server_name = server_name

    def _fail(self, message: str) -> StepError:
        return StepError(DeployStep.CONFIGURE_FIREWALL.value, self.server_name, message)

    def is_active(self) -> bool:
        result = self.executor.execute_command("ufw status", sudo=True)
        if not result.success:
            raise self._fail(f"cannot read ufw status: {result.message}")
        return "Status: active" in result.output

    def added_rules(self) -> str:
        result = self.executor.execute_command("ufw show added", sudo=True)
        if not result.success:
            raise self._fail(f"cannot list ufw rules: {result.message}")
        return result.output

    def ensure_rules(self, rules: List[FirewallRule]) -> FirewallChange:
        """Add missing rules, then enable UFW if it is inactive."""
        check = self.executor.execute_command("command -v ufw")
        if not check.success:
            raise self._fail("ufw is not installed")

        change = FirewallChange()
        current = self.added_rules()
        for rule in rules:
            if rule.present_in(current):
                change.existing.append(rule)
                continue
            result = self.executor.execute_command(rule.ufw_command(), sudo=True)
            if not result.success:
                raise self._fail(f"adding rule {rule} failed: {result.message}")
            logger.debug(f"{self.server_name}: added firewall rule {rule}")
            change.added.append(rule)

        if not self.is_active():
            result = self.executor.execute_command("ufw --force enable", sudo=True)
            if not result.success:
                raise self._fail(f"enabling ufw failed: {result.message}")
            change.enabled = True

        return change
