# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Data model for scan processing.

Covers the canonical event handed from the envelope resolver to the
decomposer, the typed scan payload variants, and the flat row types
written to the analytics store. Row field names are the storage
contract and must match the table columns exactly.
"""

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

DEFAULT_TENANT_ID = "default-tenant"
UNKNOWN_HOST_ID = "unknown-host"

SCAN_TYPE_REALTIME = "realtime"
SCAN_TYPE_OTHER = "other"


@dataclass(frozen=True)
class Tenant:
    """Origin of a scan. Carried unchanged into every derived row."""

    tenant_id: str
    host_id: str

    @classmethod
    def from_partial(cls, data: Any) -> "Tenant":
        """Build a tenant from whatever identifiers exist, using sentinels for the rest."""
        if not isinstance(data, Mapping):
            data = {}
        return cls(
            tenant_id=str(data.get("tenant_id") or DEFAULT_TENANT_ID),
            host_id=str(data.get("host_id") or UNKNOWN_HOST_ID),
        )


# =============================================================================
# PAYLOAD PARTS
# =============================================================================


def _mappings(value: Any) -> List[Mapping[str, Any]]:
    """Return the mapping entries of a list field; anything else yields nothing."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


@dataclass(frozen=True)
class Disk:
    name: Optional[str] = None
    mount_point: Optional[str] = None
    file_system: Optional[str] = None
    total_space: Optional[float] = None
    used_space: Optional[float] = None
    free_space: Optional[float] = None

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "Disk":
        return cls(
            name=data.get("name"),
            mount_point=data.get("mount_point"),
            file_system=data.get("file_system"),
            total_space=data.get("total_space"),
            used_space=data.get("used_space"),
            free_space=data.get("free_space"),
        )


@dataclass(frozen=True)
class NetworkSample:
    interface_name: Optional[str] = None
    bytes_received: Optional[float] = None
    bytes_sent: Optional[float] = None
    packets_received: Optional[float] = None
    packets_sent: Optional[float] = None
    timestamp: Optional[str] = None

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "NetworkSample":
        return cls(
            interface_name=data.get("interface_name"),
            bytes_received=data.get("bytes_received"),
            bytes_sent=data.get("bytes_sent"),
            packets_received=data.get("packets_received"),
            packets_sent=data.get("packets_sent"),
            timestamp=data.get("timestamp"),
        )


@dataclass(frozen=True)
class ResourceStats:
    cpu_usage: Optional[float] = None
    cpu_temperature: Optional[float] = None
    memory_usage: Optional[float] = None
    memory_total: Optional[float] = None
    memory_swap_used: Optional[float] = None
    memory_swap_total: Optional[float] = None
    disks: Tuple[Disk, ...] = ()
    network_stats: Tuple[NetworkSample, ...] = ()

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "ResourceStats":
        return cls(
            cpu_usage=data.get("cpu_usage"),
            cpu_temperature=data.get("cpu_temperature"),
            memory_usage=data.get("memory_usage"),
            memory_total=data.get("memory_total"),
            memory_swap_used=data.get("memory_swap_used"),
            memory_swap_total=data.get("memory_swap_total"),
            disks=tuple(Disk.parse(d) for d in _mappings(data.get("disks"))),
            network_stats=tuple(
                NetworkSample.parse(n) for n in _mappings(data.get("network_stats"))
            ),
        )


@dataclass(frozen=True)
class GpuSample:
    name: Optional[str] = None
    cpu_usage: Optional[float] = None
    temperature: Optional[float] = None
    memory_usage: Optional[float] = None
    memory_total: Optional[float] = None

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "GpuSample":
        return cls(
            name=data.get("name"),
            cpu_usage=data.get("cpu_usage"),
            temperature=data.get("temperature"),
            memory_usage=data.get("memory_usage"),
            memory_total=data.get("memory_total"),
        )


@dataclass(frozen=True)
class NetworkInfo:
    hostname: Optional[str] = None
    ipv4: Tuple[str, ...] = ()
    ipv6: Tuple[str, ...] = ()
    dns: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "NetworkInfo":
        def strings(value: Any) -> Tuple[str, ...]:
            return tuple(str(v) for v in value) if isinstance(value, list) else ()

        return cls(
            hostname=data.get("hostname"),
            ipv4=strings(data.get("ipv4")),
            ipv6=strings(data.get("ipv6")),
            dns=strings(data.get("dns")),
        )


@dataclass(frozen=True)
class Notice:
    subject: str = ""
    body: str = ""


@dataclass(frozen=True)
class ServiceGpu:
    name: Optional[str] = None
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "ServiceGpu":
        return cls(
            name=data.get("name"),
            cpu_usage=data.get("cpu_usage"),
            memory_usage=data.get("memory_usage"),
        )


@dataclass(frozen=True)
class Service:
    name: Optional[str] = None
    status: Optional[str] = None  # running | paused | stopped
    enabled: bool = False
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None
    gpu_usage: Tuple[ServiceGpu, ...] = ()

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "Service":
        return cls(
            name=data.get("name"),
            status=data.get("status"),
            enabled=bool(data.get("enabled")),
            cpu_usage=data.get("cpu_usage"),
            memory_usage=data.get("memory_usage"),
            gpu_usage=tuple(ServiceGpu.parse(g) for g in _mappings(data.get("gpu_usage"))),
        )


@dataclass(frozen=True)
class Software:
    name: Optional[str] = None
    version: Optional[str] = None


def _notices(value: Any) -> Tuple[Notice, ...]:
    return tuple(
        Notice(subject=str(n.get("subject", "")), body=str(n.get("body", "")))
        for n in _mappings(value)
    )


# =============================================================================
# PAYLOAD VARIANTS
# =============================================================================


@dataclass(frozen=True)
class RealtimeScanPayload:
    """Resource, disk, network and GPU gauges sampled at one instant."""

    scan_type: ClassVar[str] = SCAN_TYPE_REALTIME

    timestamp: str = ""
    resource_stats: Optional[ResourceStats] = None
    gpu_stats: Tuple[GpuSample, ...] = ()
    network_info: Optional[NetworkInfo] = None
    notices: Tuple[Notice, ...] = ()


@dataclass(frozen=True)
class OtherScanPayload:
    """Service and installed software inventory."""

    scan_type: ClassVar[str] = SCAN_TYPE_OTHER

    timestamp: str = ""
    services: Tuple[Service, ...] = ()
    software: Tuple[Software, ...] = ()
    notices: Tuple[Notice, ...] = ()


@dataclass(frozen=True)
class UnknownScanPayload:
    """A payload whose scanType has no decomposition rule (or none at all)."""

    kind: Optional[str] = None
    timestamp: str = ""

    @property
    def scan_type(self) -> str:
        return self.kind or "unknown"


ScanPayload = Union[RealtimeScanPayload, OtherScanPayload, UnknownScanPayload]


def scan_type_of(data: Any) -> Optional[str]:
    """Return ``metadata.scanType`` of a raw payload, or None when absent."""
    if not isinstance(data, Mapping):
        return None
    metadata = data.get("metadata")
    if not isinstance(metadata, Mapping):
        return None
    kind = metadata.get("scanType")
    return str(kind) if kind else None


def parse_payload(data: Mapping[str, Any]) -> ScanPayload:
    """
    Parse a raw payload mapping into its typed variant.

    Args:
        data: Raw payload with ``metadata.scanType`` and ``timestamp``

    Returns:
        RealtimeScanPayload, OtherScanPayload or UnknownScanPayload
    """
    kind = scan_type_of(data)
    timestamp = data.get("timestamp") or ""
    if not isinstance(timestamp, str):
        timestamp = str(timestamp)

    if kind == SCAN_TYPE_REALTIME:
        resource_stats = data.get("resource_stats")
        network_info = data.get("network_info")
        return RealtimeScanPayload(
            timestamp=timestamp,
            resource_stats=(
                ResourceStats.parse(resource_stats) if isinstance(resource_stats, Mapping) else None
            ),
            gpu_stats=tuple(GpuSample.parse(g) for g in _mappings(data.get("gpu_stats"))),
            network_info=(
                NetworkInfo.parse(network_info) if isinstance(network_info, Mapping) else None
            ),
            notices=_notices(data.get("notices")),
        )

    if kind == SCAN_TYPE_OTHER:
        return OtherScanPayload(
            timestamp=timestamp,
            services=tuple(Service.parse(s) for s in _mappings(data.get("services"))),
            software=tuple(
                Software(name=s.get("name"), version=s.get("version"))
                for s in _mappings(data.get("software"))
            ),
            notices=_notices(data.get("notices")),
        )

    return UnknownScanPayload(kind=kind, timestamp=timestamp)


@dataclass(frozen=True)
class CanonicalEvent:
    """Normalized (tenant, payload) pair consumed by all downstream logic."""

    tenant: Tenant
    payload: ScanPayload

    @property
    def scan_type(self) -> str:
        return self.payload.scan_type


# =============================================================================
# STORE ROWS
# =============================================================================


@dataclass(frozen=True)
class Row:
    """Base for flat store rows. Every row starts with (tenant_id, host_id, timestamp)."""

    table: ClassVar[str] = ""

    tenant_id: str
    host_id: str
    timestamp: str

    def as_row(self) -> Dict[str, Any]:
        """Return the JSON-row shape written to the store."""
        return asdict(self)


@dataclass(frozen=True)
class ResourceStatsRow(Row):
    table: ClassVar[str] = "resource_stats"

    cpu_usage: float = 0
    cpu_temperature: float = 0
    memory_usage: float = 0
    memory_total: float = 0
    memory_swap_used: float = 0
    memory_swap_total: float = 0
    scan_type: str = SCAN_TYPE_REALTIME
    hostname: str = ""


@dataclass(frozen=True)
class DiskStatsRow(Row):
    table: ClassVar[str] = "disk_stats"

    name: str = ""
    mount_point: str = ""
    file_system: str = ""
    total_space: Optional[float] = None
    used_space: Optional[float] = None
    free_space: Optional[float] = None


@dataclass(frozen=True)
class NetworkStatsRow(Row):
    table: ClassVar[str] = "network_stats"

    interface_name: Optional[str] = None
    bytes_received: Optional[float] = None
    bytes_sent: Optional[float] = None
    packets_received: Optional[float] = None
    packets_sent: Optional[float] = None
    interface_timestamp: str = ""


@dataclass(frozen=True)
class GpuStatsRow(Row):
    table: ClassVar[str] = "gpu_stats"

    name: Optional[str] = None
    cpu_usage: Optional[float] = None
    temperature: float = 0
    memory_usage: Optional[float] = None
    memory_total: Optional[float] = None


@dataclass(frozen=True)
class ServiceRow(Row):
    table: ClassVar[str] = "services"

    name: Optional[str] = None
    status: Optional[str] = None
    enabled: int = 0
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None


@dataclass(frozen=True)
class ServiceGpuUsageRow(Row):
    table: ClassVar[str] = "service_gpu_usage"

    service_name: Optional[str] = None
    gpu_name: Optional[str] = None
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None


@dataclass(frozen=True)
class SoftwareRow(Row):
    table: ClassVar[str] = "software"

    name: Optional[str] = None
    version: Optional[str] = None


ROW_TYPES = (
    ResourceStatsRow,
    DiskStatsRow,
    NetworkStatsRow,
    GpuStatsRow,
    ServiceRow,
    ServiceGpuUsageRow,
    SoftwareRow,
)

TABLE_NAMES = tuple(row_type.table for row_type in ROW_TYPES)
