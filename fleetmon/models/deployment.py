"""
Deployment result models.

A DeploymentOutcome records the steps one server went through during a deploy
run. Outcomes live only in memory: they are collected by the fleet deployer
and handed to the summary printer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class DeployStep(str, Enum):
    """Provisioning steps, in execution order."""

    CHECK_CONNECTIVITY = "check_connectivity"
    CONFIGURE_FIREWALL = "configure_firewall"
    INSTALL_SYSTEM_AGENT = "install_system_agent"
    INSTALL_CONTAINER_AGENT = "install_container_agent"


class DeployState(str, Enum):
    """Per-server deployment states."""

    PENDING = "pending"
    CONNECTIVITY_CHECKED = "connectivity_checked"
    FIREWALL_CONFIGURED = "firewall_configured"
    SYSTEM_AGENT_INSTALLED = "system_agent_installed"
    CONTAINER_AGENT_INSTALLED = "container_agent_installed"
    DONE = "done"
    FAILED = "failed"


# State reached when a step succeeds (or is skipped).
STEP_COMPLETES = {
    DeployStep.CHECK_CONNECTIVITY: DeployState.CONNECTIVITY_CHECKED,
    DeployStep.CONFIGURE_FIREWALL: DeployState.FIREWALL_CONFIGURED,
    DeployStep.INSTALL_SYSTEM_AGENT: DeployState.SYSTEM_AGENT_INSTALLED,
    DeployStep.INSTALL_CONTAINER_AGENT: DeployState.CONTAINER_AGENT_INSTALLED,
}


@dataclass
class StepResult:
    """Outcome of one provisioning step."""

    step: str
    success: bool
    message: str = ""
    skipped: bool = False
    changed: bool = False
    duration: float = 0.0


@dataclass
class DeploymentOutcome:
    """Everything that happened to one server during a deploy run."""

    server: str
    steps: List[StepResult] = field(default_factory=list)
    state: DeployState = DeployState.PENDING
    failed_step: Optional[str] = None

    @property
    def overall_success(self) -> bool:
        return self.state == DeployState.DONE

    @property
    def failed(self) -> bool:
        return self.state == DeployState.FAILED

    @property
    def failure_message(self) -> str:
        for step in reversed(self.steps):
            if not step.success:
                return step.message
        return ""

    def record(self, result: StepResult) -> None:
        """Append a step result and advance or fail the state machine."""
        self.steps.append(result)
        if result.success:
            try:
                self.state = STEP_COMPLETES[DeployStep(result.step)]
            except ValueError:
                pass
        else:
            self.fail(result.step)

    def fail(self, step: str) -> None:
        self.state = DeployState.FAILED
        self.failed_step = step

    def finish(self) -> None:
        if self.state != DeployState.FAILED:
            self.state = DeployState.DONE


@dataclass
class DeploymentReport:
    """Aggregate of one deploy run."""

    outcomes: List[DeploymentOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> List[DeploymentOutcome]:
        return [o for o in self.outcomes if o.overall_success]

    @property
    def failed(self) -> List[DeploymentOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def success(self) -> bool:
        return not self.failed

    def get(self, server: str) -> Optional[DeploymentOutcome]:
        for outcome in self.outcomes:
            if outcome.server == server:
                return outcome
        return None
