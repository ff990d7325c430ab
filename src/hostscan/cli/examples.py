# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Example scan jobs for smoke-testing a deployment.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

EXAMPLE_TENANT = {
    "tenant_id": "550e8400-e29b-41d4-a716-446655440000",
    "host_id": "550e8400-e29b-41d4-a716-446655440001",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def realtime_payload(timestamp: Optional[str] = None) -> Dict[str, Any]:
    """Realtime scan with resource, disk, network and GPU stats."""
    timestamp = timestamp or _now()
    return {
        "timestamp": timestamp,
        "metadata": {"scanType": "realtime"},
        "resource_stats": {
            "cpu_usage": 45.5,
            "cpu_temperature": 65.3,
            "memory_usage": 8589934592,  # 8 GB
            "memory_total": 17179869184,  # 16 GB
            "memory_swap_used": 1073741824,  # 1 GB
            "memory_swap_total": 4294967296,  # 4 GB
            "disks": [
                {
                    "name": "sda1",
                    "mount_point": "/",
                    "file_system": "ext4",
                    "total_space": 107374182400,  # 100 GB
                    "used_space": 64424509440,  # 60 GB
                    "free_space": 42949672960,  # 40 GB
                },
            ],
            "network_stats": [
                {
                    "interface_name": "eth0",
                    "bytes_received": 1073741824,
                    "bytes_sent": 536870912,
                    "packets_received": 1000000,
                    "packets_sent": 500000,
                    "timestamp": timestamp,
                },
            ],
        },
        "gpu_stats": [
            {
                "name": "NVIDIA GeForce RTX 3080",
                "cpu_usage": 75.2,
                "temperature": 70.1,
                "memory_usage": 8589934592,
                "memory_total": 10737418240,
            },
        ],
        "network_info": {
            "hostname": "server-01",
            "ipv4": ["192.168.1.100"],
            "ipv6": ["fe80::1234:5678:9abc:def0"],
            "dns": ["8.8.8.8", "8.8.4.4"],
        },
    }


def other_payload(timestamp: Optional[str] = None) -> Dict[str, Any]:
    """Inventory scan with services (one using a GPU) and software."""
    return {
        "timestamp": timestamp or _now(),
        "metadata": {"scanType": "other"},
        "services": [
            {
                "name": "nginx",
                "status": "running",
                "enabled": True,
                "cpu_usage": 2.5,
                "memory_usage": 268435456,  # 256 MB
            },
            {
                "name": "postgresql",
                "status": "running",
                "enabled": True,
                "cpu_usage": 5.1,
                "memory_usage": 536870912,  # 512 MB
                "gpu_usage": [
                    {
                        "name": "NVIDIA GeForce RTX 3080",
                        "cpu_usage": 10.5,
                        "memory_usage": 1073741824,
                    },
                ],
            },
        ],
        "software": [
            {"name": "nginx", "version": "1.18.0"},
            {"name": "postgresql", "version": "13.4"},
            {"name": "node", "version": "16.13.0"},
        ],
    }


def example_jobs() -> List[Dict[str, Any]]:
    """Both example scans wrapped in the standard jobData envelope."""
    return [
        {"jobData": {"tenant": dict(EXAMPLE_TENANT), "payload": realtime_payload()}},
        {"jobData": {"tenant": dict(EXAMPLE_TENANT), "payload": other_payload()}},
    ]
