"""Tests for Prometheus scrape configuration generation."""

import pytest
import yaml

from fleetmon.models.server_inventory import Inventory
from fleetmon.services.config_generator import (
    HEADER,
    generate_scrape_config,
    render_config,
    write_config,
)
from fleetmon.utils import files
from fleetmon.utils.errors import InventoryValidationError
from fleetmon.utils.settings import Settings
from tests.factories import make_server


def test_web_01_scenario(web_inventory):
    config = generate_scrape_config(web_inventory)

    node = config.job("node-exporter")
    cadvisor = config.job("cadvisor")
    labels = {
        "environment": "production",
        "role": "web-application",
        "monitoring_type": "docker+system",
    }
    assert node.targets == ["web01-host:9100"]
    assert node.static_configs[0].labels == labels
    assert cadvisor.targets == ["web01-host:8080"]
    assert cadvisor.static_configs[0].labels == labels


def test_job_order_and_self_scrape(web_inventory):
    config = generate_scrape_config(web_inventory)

    assert [job.job_name for job in config.scrape_configs] == [
        "prometheus",
        "node-exporter",
        "cadvisor",
    ]
    self_job = config.scrape_configs[0]
    assert self_job.targets == ["localhost:9090"]
    assert self_job.scrape_interval == "5s"


def test_groups_by_flags_in_inventory_order():
    inventory = Inventory(
        servers=[
            make_server("k8s-01", monitoring_type="kubernetes+system"),
            make_server("db-01", monitoring_type="system", docker_enabled=False, cadvisor_port=None),
            make_server("web-01", docker_enabled=False, cadvisor_port=None),
            make_server("web-02", prometheus_port=9101),
        ]
    )

    config = generate_scrape_config(inventory)

    assert config.job("node-exporter").targets == [
        "k8s-01-host:9100",
        "db-01-host:9100",
        "web-01-host:9100",
        "web-02-host:9101",
    ]
    assert config.job("cadvisor").targets == ["k8s-01-host:8080", "web-02-host:8080"]


def test_empty_capability_job_is_still_emitted():
    inventory = Inventory(
        servers=[make_server("db-01", monitoring_type="system", docker_enabled=False, cadvisor_port=None)]
    )

    config = generate_scrape_config(inventory)

    assert config.job("cadvisor").static_configs == []


def test_refuses_invalid_inventory():
    inventory = Inventory(servers=[make_server("db-01", monitoring_type="system")])

    with pytest.raises(InventoryValidationError) as exc_info:
        generate_scrape_config(inventory)

    assert len(exc_info.value.issues) == 1


def test_rendering_is_deterministic(web_inventory):
    first = render_config(generate_scrape_config(web_inventory))
    second = render_config(generate_scrape_config(web_inventory))

    assert first == second
    assert first.startswith(HEADER)


def test_rendered_document_shape(web_inventory):
    settings = Settings(cluster_name="lab", alertmanager_target="am:9093")
    document = yaml.safe_load(render_config(generate_scrape_config(web_inventory, settings)))

    assert list(document) == ["global", "rule_files", "alerting", "scrape_configs"]
    assert document["global"]["external_labels"]["cluster"] == "lab"
    assert document["global"]["scrape_interval"] == "15s"
    assert document["alerting"]["alertmanagers"][0]["static_configs"][0]["targets"] == ["am:9093"]
    assert "labels" not in document["scrape_configs"][0]["static_configs"][0]
    assert "metrics_path" not in document["scrape_configs"][1]


def test_write_config(tmp_path, web_inventory):
    output = tmp_path / "configs" / "prometheus-generated.yml"

    config = write_config(web_inventory, str(output))

    assert output.read_text() == render_config(config)


def test_write_config_replaces_file_whole(tmp_path, web_inventory, monkeypatch):
    output = tmp_path / "prometheus-generated.yml"
    output.write_text("# previous\n")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(files.os, "replace", broken_replace)

    with pytest.raises(OSError):
        write_config(web_inventory, str(output))

    assert output.read_text() == "# previous\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["prometheus-generated.yml"]
