"""Test data builders."""

from fleetmon.models.server_inventory import ServerRecord

SAMPLE_INVENTORY = """\
# Production monitoring inventory
servers:
- name: monitoring-01
  hostname: monitor.example.com
  ip: 10.0.7.10
  environment: production
  role: monitoring
  monitoring_type: docker+system
  system_monitoring: true
  docker_enabled: true
  prometheus_port: 9100
  cadvisor_port: 8080
  ssh_user: monitoring
  ssh_key: ~/.ssh/monitoring_key
  tags:
  - monitoring
  - production
- name: db-01
  hostname: db01-host
  ip: 10.0.7.21
  environment: production
  role: database
  monitoring_type: system
  system_monitoring: true
  docker_enabled: false
  prometheus_port: 9100
  ssh_user: monitoring
  ssh_key: ~/.ssh/monitoring_key
  rack: b4
  tags:
  - database
global_labels:
  owner: platform
"""


def make_server(name: str, **overrides) -> ServerRecord:
    """A valid docker+system server named ``name``."""
    values = dict(
        name=name,
        hostname=f"{name}-host",
        ip="10.0.7.50",
        environment="production",
        role="web-application",
        monitoring_type="docker+system",
        system_monitoring=True,
        docker_enabled=True,
        prometheus_port=9100,
        cadvisor_port=8080,
        ssh_user="monitoring",
        ssh_key="~/.ssh/monitoring_key",
    )
    values.update(overrides)
    return ServerRecord(**values)
