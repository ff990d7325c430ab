# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Shared fixtures for HostScan tests.
"""

import os
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

TENANT = {"tenant_id": "tenant-1", "host_id": "host-1"}


class FakeStore:
    """
    In-memory stand-in for the analytics store.

    Records every insert call and keeps the rows of successful ones.
    ``fail_when(table, rows)`` decides whether a call raises.
    """

    def __init__(self, fail_when: Optional[Callable[[str, Sequence[Dict[str, Any]]], bool]] = None):
        self.fail_when = fail_when
        self.calls: List[Tuple[str, int]] = []
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        with self._lock:
            self.calls.append((table, len(rows)))
        if self.fail_when and self.fail_when(table, rows):
            raise RuntimeError(f"insert into {table} rejected")
        with self._lock:
            self.tables.setdefault(table, []).extend(dict(row) for row in rows)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the user's HOSTSCAN_* settings and config file out of tests."""
    for name in list(os.environ):
        if name.startswith("HOSTSCAN_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("HOSTSCAN_CONFIG", str(tmp_path / "missing-config.yaml"))


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def realtime_payload():
    """Realtime payload: resource stats with 2 disks, 1 network sample, 1 GPU."""
    return {
        "timestamp": "2025-04-21T08:38:47.727181+01:00",
        "metadata": {"scanType": "realtime"},
        "resource_stats": {
            "cpu_usage": 12.5,
            "memory_usage": 1024,
            "memory_total": 4096,
            "disks": [
                {"name": "sda1", "mount_point": "/", "file_system": "ext4",
                 "total_space": 100, "used_space": 60, "free_space": 40},
                {"name": "sdb1", "mount_point": "/data",
                 "total_space": 200, "used_space": 50, "free_space": 150},
            ],
            "network_stats": [
                {"interface_name": "eth0", "bytes_received": 10, "bytes_sent": 20,
                 "packets_received": 1, "packets_sent": 2,
                 "timestamp": "2025-04-21T08:38:45.000001Z"},
            ],
        },
        "gpu_stats": [
            {"name": "RTX 3080", "cpu_usage": 75.2, "memory_usage": 8, "memory_total": 10},
        ],
        "network_info": {"hostname": "server-01", "ipv4": ["10.0.0.1"]},
        "notices": [{"subject": "hello", "body": "world"}],
    }


@pytest.fixture
def other_payload():
    """Other payload: 2 services (second with 2 GPUs) and 1 software entry."""
    return {
        "timestamp": "2025-04-21T09:00:00Z",
        "metadata": {"scanType": "other"},
        "services": [
            {"name": "nginx", "status": "running", "enabled": True,
             "cpu_usage": 2.5, "memory_usage": 256},
            {"name": "trainer", "status": "paused", "enabled": False,
             "cpu_usage": 50.0, "memory_usage": 4096,
             "gpu_usage": [
                 {"name": "gpu0", "cpu_usage": 10.5, "memory_usage": 1024},
                 {"name": "gpu1", "cpu_usage": 11.5, "memory_usage": 2048},
             ]},
        ],
        "software": [{"name": "nginx", "version": "1.18.0"}],
    }
