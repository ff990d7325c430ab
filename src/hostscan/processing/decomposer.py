# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Scan decomposition.

Turns one canonical event into per-table record sets. Pure apart from a
warning for scan kinds without a rule; tables with no rows are left out
of the result so the writer never sees an empty batch.
"""

import logging
from typing import Dict, List

from .models import (
    CanonicalEvent,
    DiskStatsRow,
    GpuStatsRow,
    NetworkStatsRow,
    OtherScanPayload,
    RealtimeScanPayload,
    ResourceStatsRow,
    Row,
    ServiceGpuUsageRow,
    ServiceRow,
    SoftwareRow,
    Tenant,
    UnknownScanPayload,
)
from .timestamps import to_store_datetime

logger = logging.getLogger(__name__)

RecordSets = Dict[str, List[Row]]


def _realtime_rows(tenant: Tenant, payload: RealtimeScanPayload) -> List[Row]:
    timestamp = to_store_datetime(payload.timestamp)
    prefix = dict(tenant_id=tenant.tenant_id, host_id=tenant.host_id, timestamp=timestamp)
    rows: List[Row] = []

    stats = payload.resource_stats
    if stats is not None:
        hostname = payload.network_info.hostname if payload.network_info else None
        rows.append(ResourceStatsRow(
            **prefix,
            cpu_usage=stats.cpu_usage or 0,
            cpu_temperature=stats.cpu_temperature or 0,
            memory_usage=stats.memory_usage or 0,
            memory_total=stats.memory_total or 0,
            memory_swap_used=stats.memory_swap_used or 0,
            memory_swap_total=stats.memory_swap_total or 0,
            hostname=hostname or "",
        ))

        for disk in stats.disks:
            rows.append(DiskStatsRow(
                **prefix,
                name=disk.name or "",
                mount_point=disk.mount_point or "",
                file_system=disk.file_system or "",
                total_space=disk.total_space,
                used_space=disk.used_space,
                free_space=disk.free_space,
            ))

        for sample in stats.network_stats:
            rows.append(NetworkStatsRow(
                **prefix,
                interface_name=sample.interface_name,
                bytes_received=sample.bytes_received,
                bytes_sent=sample.bytes_sent,
                packets_received=sample.packets_received,
                packets_sent=sample.packets_sent,
                interface_timestamp=to_store_datetime(sample.timestamp),
            ))

    for gpu in payload.gpu_stats:
        rows.append(GpuStatsRow(
            **prefix,
            name=gpu.name,
            cpu_usage=gpu.cpu_usage,
            temperature=gpu.temperature or 0,
            memory_usage=gpu.memory_usage,
            memory_total=gpu.memory_total,
        ))

    # network_info and notices are informational only
    return rows


def _other_rows(tenant: Tenant, payload: OtherScanPayload) -> List[Row]:
    timestamp = to_store_datetime(payload.timestamp)
    prefix = dict(tenant_id=tenant.tenant_id, host_id=tenant.host_id, timestamp=timestamp)
    rows: List[Row] = []

    for service in payload.services:
        rows.append(ServiceRow(
            **prefix,
            name=service.name,
            status=service.status,
            enabled=1 if service.enabled else 0,
            cpu_usage=service.cpu_usage,
            memory_usage=service.memory_usage,
        ))

    for service in payload.services:
        for gpu in service.gpu_usage:
            rows.append(ServiceGpuUsageRow(
                **prefix,
                service_name=service.name,
                gpu_name=gpu.name,
                cpu_usage=gpu.cpu_usage,
                memory_usage=gpu.memory_usage,
            ))

    for software in payload.software:
        rows.append(SoftwareRow(**prefix, name=software.name, version=software.version))

    return rows


def decompose(event: CanonicalEvent) -> RecordSets:
    """
    Split a canonical event into record sets keyed by table name.

    Args:
        event: Resolved event

    Returns:
        Mapping of table name to non-empty row list, in table write order
    """
    payload = event.payload

    if isinstance(payload, RealtimeScanPayload):
        rows = _realtime_rows(event.tenant, payload)
    elif isinstance(payload, OtherScanPayload):
        rows = _other_rows(event.tenant, payload)
    elif isinstance(payload, UnknownScanPayload):
        logger.warning(f"Unknown scan type: {payload.kind}, skipping processing")
        return {}
    else:
        raise TypeError(f"Unsupported payload type: {type(payload).__name__}")

    record_sets: RecordSets = {}
    for row in rows:
        record_sets.setdefault(row.table, []).append(row)
    return record_sets
