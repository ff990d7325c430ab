# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Analytics store schema.

One table per record set. Every table starts with the
(tenant_id, host_id, timestamp) prefix; the remaining columns mirror the
row types in ``processing.models`` field for field.

Timestamps are stored in their normalized text form ('YYYY-MM-DD HH:MM:SS').
Values the normalizer could not parse are kept verbatim, so a malformed
or missing timestamp never rejects a row. Use ``TRY_CAST(timestamp AS
TIMESTAMP)`` in queries.
"""

from typing import Dict

TABLE_SCHEMAS: Dict[str, str] = {
    "resource_stats": """
        CREATE TABLE IF NOT EXISTS resource_stats (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            cpu_usage DOUBLE,
            cpu_temperature DOUBLE,
            memory_usage BIGINT,
            memory_total BIGINT,
            memory_swap_used BIGINT,
            memory_swap_total BIGINT,
            scan_type VARCHAR,
            hostname VARCHAR
        )
    """,
    "disk_stats": """
        CREATE TABLE IF NOT EXISTS disk_stats (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            name VARCHAR,
            mount_point VARCHAR,
            file_system VARCHAR,
            total_space BIGINT,
            used_space BIGINT,
            free_space BIGINT
        )
    """,
    "network_stats": """
        CREATE TABLE IF NOT EXISTS network_stats (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            interface_name VARCHAR,
            bytes_received BIGINT,
            bytes_sent BIGINT,
            packets_received BIGINT,
            packets_sent BIGINT,
            interface_timestamp VARCHAR
        )
    """,
    "gpu_stats": """
        CREATE TABLE IF NOT EXISTS gpu_stats (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            name VARCHAR,
            cpu_usage DOUBLE,
            temperature DOUBLE,
            memory_usage BIGINT,
            memory_total BIGINT
        )
    """,
    "services": """
        CREATE TABLE IF NOT EXISTS services (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            name VARCHAR,
            status VARCHAR,
            enabled UTINYINT,
            cpu_usage DOUBLE,
            memory_usage BIGINT
        )
    """,
    "service_gpu_usage": """
        CREATE TABLE IF NOT EXISTS service_gpu_usage (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            service_name VARCHAR,
            gpu_name VARCHAR,
            cpu_usage DOUBLE,
            memory_usage BIGINT
        )
    """,
    "software": """
        CREATE TABLE IF NOT EXISTS software (
            tenant_id VARCHAR NOT NULL,
            host_id VARCHAR NOT NULL,
            timestamp VARCHAR NOT NULL,
            name VARCHAR,
            version VARCHAR
        )
    """,
}


def create_schema(connection) -> None:
    """
    Create all analytics tables if missing.

    Args:
        connection: Open DuckDB connection
    """
    for ddl in TABLE_SCHEMAS.values():
        connection.execute(ddl)
