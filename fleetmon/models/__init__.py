"""Models package for fleetmon."""
from .deployment import DeploymentOutcome, DeploymentReport, DeployState, DeployStep, StepResult
from .scrape_config import PrometheusConfig, ScrapeJob, StaticTarget
from .server_inventory import (
    Capability,
    Inventory,
    MonitoringType,
    ServerRecord,
    ServerSummary,
    ValidationIssue,
)

__all__ = [
    "Capability",
    "DeployState",
    "DeployStep",
    "DeploymentOutcome",
    "DeploymentReport",
    "Inventory",
    "MonitoringType",
    "PrometheusConfig",
    "ScrapeJob",
    "ServerRecord",
    "ServerSummary",
    "StaticTarget",
    "StepResult",
    "ValidationIssue",
]
