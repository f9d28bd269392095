"""
Prometheus scrape configuration generator.

Builds the scrape configuration from the inventory. Servers are grouped by
capability flag, not by their monitoring_type label: every server with
``system_monitoring`` lands in the node-exporter job and every server with
``docker_enabled`` lands in the cadvisor job. Jobs appear in
CAPABILITY_ORDER and servers appear in inventory order, so the same inventory
always renders to the same bytes.
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml

from fleetmon.models.scrape_config import GlobalConfig, PrometheusConfig, ScrapeJob, StaticTarget
from fleetmon.models.server_inventory import CAPABILITY_ORDER, Capability, Inventory
from fleetmon.utils.errors import InventoryValidationError
from fleetmon.utils.files import atomic_write_text
from fleetmon.utils.settings import Settings

logger = logging.getLogger(__name__)

TARGET_LABELS = ("environment", "role", "monitoring_type")

HEADER = (
    "# Generated by fleetmon from the server inventory. Do not edit by hand;\n"
    "# change the inventory and run `fleetmon generate-config` instead.\n"
)


def build_capability_job(inventory: Inventory, capability: Capability) -> ScrapeJob:
    """One scrape job with a static target per server having ``capability``."""
    entries: List[StaticTarget] = []
    for server in inventory.with_capability(capability):
        port = server.port_for(capability)
        entries.append(
            StaticTarget(
                targets=[f"{server.hostname}:{port}"],
                labels={label: str(getattr(server, label)) for label in TARGET_LABELS},
            )
        )
    return ScrapeJob(job_name=capability.value, static_configs=entries)


def build_capability_jobs(inventory: Inventory) -> List[ScrapeJob]:
    return [build_capability_job(inventory, capability) for capability in CAPABILITY_ORDER]


def generate_scrape_config(
    inventory: Inventory, settings: Optional[Settings] = None
) -> PrometheusConfig:
    """Build the full Prometheus configuration for ``inventory``.

    Raises:
        InventoryValidationError: the inventory has validation issues.
    """
    issues = inventory.validate()
    if issues:
        raise InventoryValidationError(issues)

    settings = settings or Settings()
    self_job = ScrapeJob(
        job_name="prometheus",
        scrape_interval="5s",
        metrics_path="/metrics",
        static_configs=[StaticTarget(targets=["localhost:9090"])],
    )
    return PrometheusConfig(
        global_config=GlobalConfig(
            scrape_interval=settings.scrape_interval,
            evaluation_interval=settings.evaluation_interval,
            external_labels={
                "cluster": settings.cluster_name,
                "environment": settings.environment_label,
                "replica": settings.replica_label,
            },
        ),
        rule_files=[settings.rule_files],
        alerting={
            "alertmanagers": [{"static_configs": [{"targets": [settings.alertmanager_target]}]}]
        },
        scrape_configs=[self_job] + build_capability_jobs(inventory),
    )


def render_config(config: PrometheusConfig) -> str:
    body = yaml.safe_dump(
        config.to_document(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
    return HEADER + body


def write_config(
    inventory: Inventory, path: str, settings: Optional[Settings] = None
) -> PrometheusConfig:
    """Generate the configuration and write it to ``path``."""
    config = generate_scrape_config(inventory, settings)
    output = Path(path)
    # Prometheus may reload the file at any moment.
    atomic_write_text(output, render_config(config))

    counts = ", ".join(
        f"{job.job_name}={len(job.static_configs)}" for job in config.scrape_configs[1:]
    )
    logger.info(f"Wrote Prometheus configuration to {output} ({counts})")
    return config
