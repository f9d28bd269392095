"""
Post-deploy verification.

Probes every enabled metrics endpoint (``http://hostname:port/metrics``) of
every server over HTTP. A server is healthy when all of its enabled
capability endpoints answer 2xx; each failing endpoint is reported as
``(server, capability, reason)``. Probing is read-only.

Also provides the central stack health check (Prometheus, Grafana and
Alertmanager health endpoints plus the Prometheus targets API).
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, NamedTuple, Optional

import httpx

from fleetmon.models.server_inventory import Capability, ServerRecord
from fleetmon.utils.errors import ProbeError
from fleetmon.utils.retry import RetryConfig, RetryStrategy, retry_call
from fleetmon.utils.settings import Settings

logger = logging.getLogger(__name__)


class ProbeFailure(NamedTuple):
    server: str
    capability: str
    reason: str


@dataclass
class VerificationSummary:
    """Result of probing a set of servers."""

    total: int = 0
    healthy: int = 0
    failures: List[ProbeFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def failed_servers(self) -> List[str]:
        seen: List[str] = []
        for failure in self.failures:
            if failure.server not in seen:
                seen.append(failure.server)
        return seen


def metrics_url(server: ServerRecord, capability: Capability) -> str:
    return f"http://{server.hostname}:{server.port_for(capability)}/metrics"


class Verifier:
    """Probes agent metrics endpoints with bounded parallelism."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        max_parallel: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or Settings()
        self.max_parallel = max(1, max_parallel or self.settings.max_parallel)
        self.transport = transport
        self.sleep = sleep
        self.retry_config = RetryConfig(
            max_retries=self.settings.probe_retries,
            base_delay=self.settings.probe_backoff,
            strategy=RetryStrategy.FIXED,
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.settings.probe_timeout, transport=self.transport)

    def probe(self, client: httpx.Client, server: ServerRecord, capability: Capability) -> None:
        """Raise ProbeError unless the endpoint answers 2xx within the retries."""
        url = metrics_url(server, capability)

        def attempt() -> None:
            try:
                response = client.get(url)
            except httpx.HTTPError as e:
                raise ProbeError(server.name, capability.value, f"{e.__class__.__name__}: {e}")
            if not response.is_success:
                raise ProbeError(server.name, capability.value, f"HTTP {response.status_code}")

        retry_call(attempt, self.retry_config, retry_on=(ProbeError,), sleep=self.sleep)

    def check_server(self, client: httpx.Client, server: ServerRecord) -> List[ProbeFailure]:
        failures = []
        for capability in server.capabilities():
            if server.port_for(capability) is None:
                continue
            try:
                self.probe(client, server, capability)
                logger.info(f"{server.name}: {capability.value} is responding")
            except ProbeError as e:
                reason = e.reason
                logger.error(f"{server.name}: {capability.value} is not responding: {reason}")
                failures.append(ProbeFailure(server.name, capability.value, reason))
        return failures

    def verify(self, servers: Iterable[ServerRecord]) -> VerificationSummary:
        servers = list(servers)
        summary = VerificationSummary(total=len(servers))
        with self._client() as client:
            with ThreadPoolExecutor(
                max_workers=self.max_parallel, thread_name_prefix="fleetmon-verify"
            ) as pool:
                per_server = list(pool.map(lambda s: self.check_server(client, s), servers))

        for failures in per_server:
            if failures:
                summary.failures.extend(failures)
            else:
                summary.healthy += 1
        return summary


@dataclass
class EndpointHealth:
    name: str
    url: str
    healthy: bool
    detail: str = ""


@dataclass
class CentralHealth:
    """Health of the central Prometheus/Grafana/Alertmanager stack."""

    endpoints: List[EndpointHealth] = field(default_factory=list)
    active_targets: Optional[int] = None
    up_targets: Optional[int] = None
    targets_error: Optional[str] = None
    # Filled in by CentralStack.health, which can see the local containers.
    missing_containers: List[str] = field(default_factory=list)
    containers_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        if self.missing_containers or self.containers_error:
            return False
        return bool(self.endpoints) and all(endpoint.healthy for endpoint in self.endpoints)


def central_endpoints(settings: Settings) -> List[tuple]:
    return [
        ("Prometheus", settings.prometheus_url.rstrip("/") + "/-/healthy"),
        ("Grafana", settings.grafana_url.rstrip("/") + "/api/health"),
        ("Alertmanager", settings.alertmanager_url.rstrip("/") + "/-/healthy"),
    ]


def _check_endpoint(client: httpx.Client, name: str, url: str) -> EndpointHealth:
    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        return EndpointHealth(name, url, False, f"unreachable: {e.__class__.__name__}")
    return EndpointHealth(name, url, response.is_success, f"HTTP {response.status_code}")


def check_central_stack(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> CentralHealth:
    """Probe the central services and count Prometheus targets."""
    settings = settings or Settings()
    health = CentralHealth()

    with httpx.Client(timeout=settings.probe_timeout, transport=transport) as client:
        for name, url in central_endpoints(settings):
            endpoint = _check_endpoint(client, name, url)
            log = logger.info if endpoint.healthy else logger.error
            log(f"{name} {'is healthy' if endpoint.healthy else 'is not healthy'} ({endpoint.detail})")
            health.endpoints.append(endpoint)

        targets_url = settings.prometheus_url.rstrip("/") + "/api/v1/targets"
        try:
            response = client.get(targets_url)
            response.raise_for_status()
            active = response.json().get("data", {}).get("activeTargets", [])
            health.active_targets = len(active)
            health.up_targets = sum(1 for target in active if target.get("health") == "up")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            health.targets_error = str(e) or e.__class__.__name__
            logger.warning(f"Failed to read Prometheus targets: {health.targets_error}")

    return health
