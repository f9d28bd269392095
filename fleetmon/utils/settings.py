"""Runtime settings read from FLEETMON_* environment variables."""

import ipaddress
import os
from typing import Dict

from pydantic import BaseModel, Field, field_validator

DEFAULT_INVENTORY_PATH = "production/inventory/servers.yml"
DEFAULT_OUTPUT_PATH = "production/configs/prometheus-generated.yml"

_ENV_MAP: Dict[str, str] = {
    "inventory_path": "FLEETMON_INVENTORY",
    "output_config_path": "FLEETMON_OUTPUT_CONFIG",
    "max_parallel": "FLEETMON_MAX_PARALLEL",
    "ssh_timeout": "FLEETMON_SSH_TIMEOUT",
    "server_timeout": "FLEETMON_SERVER_TIMEOUT",
    "monitoring_network": "FLEETMON_MONITORING_NETWORK",
    "probe_timeout": "FLEETMON_PROBE_TIMEOUT",
    "probe_retries": "FLEETMON_PROBE_RETRIES",
    "probe_backoff": "FLEETMON_PROBE_BACKOFF",
    "scrape_interval": "FLEETMON_SCRAPE_INTERVAL",
    "cluster_name": "FLEETMON_CLUSTER_NAME",
    "alertmanager_target": "FLEETMON_ALERTMANAGER",
    "compose_file": "FLEETMON_COMPOSE_FILE",
    "prometheus_url": "FLEETMON_PROMETHEUS_URL",
    "grafana_url": "FLEETMON_GRAFANA_URL",
    "alertmanager_url": "FLEETMON_ALERTMANAGER_URL",
}


class Settings(BaseModel):
    """Deployment and generation settings."""

    inventory_path: str = Field(DEFAULT_INVENTORY_PATH, description="Server inventory YAML")
    output_config_path: str = Field(DEFAULT_OUTPUT_PATH, description="Generated Prometheus config")

    max_parallel: int = Field(5, ge=1, description="Maximum servers deployed at once")
    ssh_timeout: float = Field(30.0, gt=0, description="SSH connect/command timeout (s)")
    server_timeout: float = Field(600.0, gt=0, description="Upper bound on one server's steps (s)")
    monitoring_network: str = Field("10.0.7.0/24", description="Network allowed to scrape agents")

    probe_timeout: float = Field(5.0, gt=0, description="HTTP probe timeout (s)")
    probe_retries: int = Field(3, ge=1, description="Attempts per metrics endpoint")
    probe_backoff: float = Field(5.0, ge=0, description="Fixed delay between attempts (s)")

    scrape_interval: str = "15s"
    evaluation_interval: str = "15s"
    cluster_name: str = "production-monitoring"
    environment_label: str = "production"
    replica_label: str = "prometheus-1"
    alertmanager_target: str = "alertmanager:9093"
    rule_files: str = "/etc/prometheus/rules/*.yml"

    compose_file: str = "docker-compose.yml"
    prometheus_url: str = "http://localhost:9090"
    grafana_url: str = "http://localhost:3000"
    alertmanager_url: str = "http://localhost:9093"

    @field_validator("monitoring_network")
    @classmethod
    def _check_network(cls, value: str) -> str:
        ipaddress.ip_network(value, strict=False)
        return value

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from the environment; explicit overrides win."""
        values = {}
        for field_name, env_var in _ENV_MAP.items():
            env_value = os.getenv(env_var)
            if env_value is not None and env_value != "":
                values[field_name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
