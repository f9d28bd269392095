"""
Server inventory model.

This module provides the canonical data model for the monitored fleet:
one ServerRecord per managed host, the Inventory collection that owns them,
and the ValidationIssue records produced when checking the inventory.

Capability flags (``system_monitoring`` and ``docker_enabled``) decide what
gets deployed and scraped. ``monitoring_type`` is a label that must agree with
them, and any disagreement is reported as a validation issue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Optional

from fleetmon.utils.errors import (
    DuplicateNameError,
    FieldValueError,
    MissingFieldsError,
    NotFoundError,
    UnknownFieldError,
)


class MonitoringType(str, Enum):
    """Monitoring profiles a server can be labeled with."""

    SYSTEM = "system"
    DOCKER_SYSTEM = "docker+system"
    KUBERNETES_SYSTEM = "kubernetes+system"

    @property
    def components(self) -> FrozenSet[str]:
        return frozenset(self.value.split("+"))

    @property
    def has_container_runtime(self) -> bool:
        # A Kubernetes node runs a container runtime, so cAdvisor applies.
        return bool(self.components & {"docker", "kubernetes"})

    @classmethod
    def parse(cls, value: Any) -> Optional[MonitoringType]:
        try:
            return cls(value)
        except ValueError:
            return None


class Capability(str, Enum):
    """Metrics facilities a server may expose; values are scrape job names."""

    SYSTEM = "node-exporter"
    CONTAINER = "cadvisor"


# Scrape jobs, deploy steps and probes follow this order.
CAPABILITY_ORDER = (Capability.SYSTEM, Capability.CONTAINER)

REQUIRED_FIELDS = ("name", "hostname", "ip", "environment", "role", "monitoring_type")

# Field name -> kind, for updates coming from the command line.
FIELD_KINDS: Dict[str, str] = {
    "name": "required_str",
    "hostname": "required_str",
    "ip": "required_str",
    "environment": "required_str",
    "role": "required_str",
    "monitoring_type": "monitoring_type",
    "system_monitoring": "bool",
    "docker_enabled": "bool",
    "prometheus_port": "port",
    "cadvisor_port": "port",
    "ssh_user": "str",
    "ssh_key": "str",
    "tags": "list",
}

KNOWN_FIELDS = tuple(FIELD_KINDS)

DEFAULT_PROMETHEUS_PORT = 9100
DEFAULT_CADVISOR_PORT = 8080
DEFAULT_SSH_USER = "monitoring"
DEFAULT_SSH_KEY = "~/.ssh/monitoring_key"

_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}
_NULL_WORDS = {"null", "none", "~", ""}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_name(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value < 65536


def _is_unset(value: Any) -> bool:
    return value is None or value is False or value == []


@dataclass
class ValidationIssue:
    """One inventory defect, tied to a server and a field."""

    server: str
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.server}: {self.field}: {self.message}"


@dataclass
class ServerSummary:
    """Display row for one server."""

    name: str
    hostname: str
    environment: str
    role: str
    monitoring_type: str


@dataclass
class ServerRecord:
    """One managed host and the monitoring it is expected to run."""

    name: str
    hostname: str
    ip: str
    environment: str
    role: str
    monitoring_type: str
    system_monitoring: bool = False
    docker_enabled: bool = False
    prometheus_port: Optional[int] = None
    cadvisor_port: Optional[int] = None
    ssh_user: Optional[str] = None
    ssh_key: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    # Keys not in the schema, kept verbatim for forward compatibility.
    extra: Dict[str, Any] = field(default_factory=dict)
    # Key order as read from disk; None for records created in memory.
    source_keys: Optional[List[str]] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_add_args(
        cls,
        name: str,
        hostname: str,
        ip: str,
        environment: str,
        role: str,
        monitoring_type: str,
    ) -> ServerRecord:
        """Build a record with the standard defaults for a new server.

        Only ``docker+system`` turns on cAdvisor here; other container-capable
        types can enable it later with ``update``.
        """
        given = dict(
            zip(REQUIRED_FIELDS, (name, hostname, ip, environment, role, monitoring_type))
        )
        missing = [key for key, value in given.items() if _is_blank(value)]
        if missing:
            raise MissingFieldsError(missing)
        name, hostname, ip, environment, role, monitoring_type = (
            value.strip() for value in given.values()
        )

        mtype = MonitoringType.parse(monitoring_type)
        if mtype is None:
            allowed = ", ".join(t.value for t in MonitoringType)
            raise FieldValueError("monitoring_type", monitoring_type, f"expected one of {allowed}")

        container = mtype is MonitoringType.DOCKER_SYSTEM
        return cls(
            name=name,
            hostname=hostname,
            ip=ip,
            environment=environment,
            role=role,
            monitoring_type=mtype.value,
            system_monitoring=True,
            docker_enabled=container,
            prometheus_port=DEFAULT_PROMETHEUS_PORT,
            cadvisor_port=DEFAULT_CADVISOR_PORT if container else None,
            ssh_user=DEFAULT_SSH_USER,
            ssh_key=DEFAULT_SSH_KEY,
            tags=[role, environment],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ServerRecord:
        """Create from a mapping read from the inventory file.

        Values are kept as read; type problems are reported by ``validate``.
        """
        known = {key: data[key] for key in KNOWN_FIELDS if key in data}
        extra = {key: value for key, value in data.items() if key not in FIELD_KINDS}
        for key in REQUIRED_FIELDS:
            known.setdefault(key, None)
        tags = known.pop("tags", None)
        record = cls(**known, extra=extra, source_keys=list(data.keys()))
        record.tags = list(tags) if isinstance(tags, (list, tuple)) else ([] if tags is None else tags)
        return record

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a mapping for the inventory file.

        Records loaded from disk keep their original key order and key set;
        new fields set later are appended.
        """
        values = {key: getattr(self, key) for key in KNOWN_FIELDS}
        values["tags"] = list(self.tags) if isinstance(self.tags, list) else self.tags

        if self.source_keys is None:
            data = dict(values)
            data.update(self.extra)
            return data

        data: Dict[str, Any] = {}
        for key in self.source_keys:
            if key in values:
                data[key] = values[key]
            elif key in self.extra:
                data[key] = self.extra[key]
        for key in KNOWN_FIELDS:
            if key not in data and not _is_unset(values[key]):
                data[key] = values[key]
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @property
    def label(self) -> str:
        return self.name if _is_name(self.name) else "<unnamed>"

    def capabilities(self) -> List[Capability]:
        """Enabled capabilities, in declared order."""
        enabled = []
        if self.system_monitoring is True:
            enabled.append(Capability.SYSTEM)
        if self.docker_enabled is True:
            enabled.append(Capability.CONTAINER)
        return enabled

    def port_for(self, capability: Capability) -> Optional[int]:
        if capability == Capability.SYSTEM:
            return self.prometheus_port
        if capability == Capability.CONTAINER:
            return self.cadvisor_port
        return None

    def summary(self) -> ServerSummary:
        return ServerSummary(
            name=str(self.name or ""),
            hostname=str(self.hostname or ""),
            environment=str(self.environment or ""),
            role=str(self.role or ""),
            monitoring_type=str(self.monitoring_type or ""),
        )

    def validate(self, label: Optional[str] = None) -> List[ValidationIssue]:
        """Validate this record, returning one issue per defect."""
        who = label or self.label
        issues: List[ValidationIssue] = []

        for key in REQUIRED_FIELDS:
            value = getattr(self, key)
            if _is_blank(value):
                issues.append(ValidationIssue(who, key, "required field is missing or empty"))
            elif not isinstance(value, str):
                issues.append(ValidationIssue(who, key, "must be a string"))

        mtype = None
        if _is_name(self.monitoring_type):
            mtype = MonitoringType.parse(self.monitoring_type)
            if mtype is None:
                allowed = ", ".join(t.value for t in MonitoringType)
                issues.append(
                    ValidationIssue(
                        who,
                        "monitoring_type",
                        f"unknown monitoring type {self.monitoring_type!r} (expected one of {allowed})",
                    )
                )

        for flag in ("system_monitoring", "docker_enabled"):
            if not isinstance(getattr(self, flag), bool):
                issues.append(ValidationIssue(who, flag, "must be true or false"))

        for port_field in ("prometheus_port", "cadvisor_port"):
            value = getattr(self, port_field)
            if value is not None and not _is_port(value):
                issues.append(
                    ValidationIssue(who, port_field, f"invalid port {value!r} (expected 1-65535)")
                )

        if self.system_monitoring is True and self.prometheus_port is None:
            issues.append(
                ValidationIssue(who, "prometheus_port", "required when system_monitoring is true")
            )

        if self.docker_enabled is True:
            if self.cadvisor_port is None:
                issues.append(
                    ValidationIssue(who, "cadvisor_port", "required when docker_enabled is true")
                )
            if mtype is not None and not mtype.has_container_runtime:
                issues.append(
                    ValidationIssue(
                        who,
                        "monitoring_type",
                        f"docker_enabled is true but monitoring type {mtype.value!r} has no container component",
                    )
                )

        if not isinstance(self.tags, list):
            issues.append(ValidationIssue(who, "tags", "must be a list of strings"))

        return issues


def coerce_field_value(field_name: str, value: Any) -> Any:
    """Convert a command-line string into the type ``field_name`` holds."""
    kind = FIELD_KINDS.get(field_name)
    if kind is None:
        raise UnknownFieldError(field_name)
    if not isinstance(value, str):
        return value

    text = value.strip()
    if kind == "required_str":
        if not text:
            raise FieldValueError(field_name, value, "must not be empty")
        return text
    if kind == "monitoring_type":
        mtype = MonitoringType.parse(text)
        if mtype is None:
            allowed = ", ".join(t.value for t in MonitoringType)
            raise FieldValueError(field_name, value, f"expected one of {allowed}")
        return mtype.value
    if kind == "bool":
        lowered = text.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise FieldValueError(field_name, value, "expected true or false")
    if kind == "port":
        if text.lower() in _NULL_WORDS:
            return None
        try:
            port = int(text)
        except ValueError:
            raise FieldValueError(field_name, value, "expected an integer port") from None
        if not _is_port(port):
            raise FieldValueError(field_name, value, "port must be between 1 and 65535")
        return port
    if kind == "list":
        return [part.strip() for part in text.split(",") if part.strip()]
    return text or None


class SummaryView:
    """Restartable, read-only view over an inventory's server summaries."""

    def __init__(self, servers: List[ServerRecord]):
        self._servers = servers

    def __iter__(self) -> Iterator[ServerSummary]:
        return (server.summary() for server in self._servers)

    def __len__(self) -> int:
        return len(self._servers)


class Inventory:
    """Ordered collection of ServerRecords.

    Mutations happen in place; persistence is handled separately by
    ``fleetmon.services.inventory_persistence``.
    """

    def __init__(
        self,
        servers: Optional[List[ServerRecord]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.servers: List[ServerRecord] = list(servers or [])
        # Top-level keys besides ``servers``.
        self.extra: Dict[str, Any] = dict(extra or {})
        # Top-level key order as read from disk.
        self.source_keys: Optional[List[str]] = None

    def __len__(self) -> int:
        return len(self.servers)

    def __iter__(self) -> Iterator[ServerRecord]:
        return iter(self.servers)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def get(self, name: str) -> Optional[ServerRecord]:
        for server in self.servers:
            if server.name == name:
                return server
        return None

    def names(self) -> List[str]:
        return [server.name for server in self.servers]

    def add(self, record: ServerRecord) -> None:
        """Append a server; raises DuplicateNameError if the name exists."""
        if record.name in self:
            raise DuplicateNameError(record.name)
        self.servers.append(record)

    def remove(self, name: str) -> bool:
        """Remove a server by name. Returns False when it was not present."""
        before = len(self.servers)
        self.servers = [server for server in self.servers if server.name != name]
        return len(self.servers) != before

    def update(self, name: str, field_name: str, value: Any) -> ServerRecord:
        """Set one known field on a server.

        String values are converted to the field's type first.
        """
        server = self.get(name)
        if server is None:
            raise NotFoundError(name)
        new_value = coerce_field_value(field_name, value)
        if field_name == "name" and new_value != name and new_value in self:
            raise DuplicateNameError(new_value)
        setattr(server, field_name, new_value)
        return server

    def validate(self) -> List[ValidationIssue]:
        """Check every record and return all issues found."""
        issues: List[ValidationIssue] = []
        seen = set()
        for index, server in enumerate(self.servers):
            label = server.name if _is_name(server.name) else f"server[{index}]"
            issues.extend(server.validate(label))
            if _is_name(server.name):
                if server.name in seen:
                    issues.append(ValidationIssue(label, "name", "duplicate server name"))
                seen.add(server.name)
        return issues

    def iter_summaries(self) -> SummaryView:
        """Lazy summary rows; each iteration starts a fresh pass."""
        return SummaryView(self.servers)

    def with_capability(self, capability: Capability) -> List[ServerRecord]:
        return [server for server in self.servers if capability in server.capabilities()]

    def to_dict(self) -> Dict[str, Any]:
        """Top-level mapping, in the key order the file was read with."""
        data: Dict[str, Any] = {}
        for key in self.source_keys or ["servers"]:
            if key == "servers":
                data["servers"] = [server.to_dict() for server in self.servers]
            elif key in self.extra:
                data[key] = self.extra[key]
        data.setdefault("servers", [server.to_dict() for server in self.servers])
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Inventory:
        servers = [ServerRecord.from_dict(item) for item in data.get("servers") or []]
        extra = {key: value for key, value in data.items() if key != "servers"}
        inventory = cls(servers=servers, extra=extra)
        inventory.source_keys = list(data.keys())
        return inventory
