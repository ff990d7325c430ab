# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the DuckDB analytics store and an end-to-end write through it.
"""

import asyncio

import pytest

from hostscan.processing.coordinator import IngestionCoordinator
from hostscan.processing.database.duckdb_store import DuckDBStore
from hostscan.processing.database.schema import TABLE_SCHEMAS
from hostscan.processing.database.writer import BatchWriter
from hostscan.processing.errors import JobFailed
from hostscan.processing.models import TABLE_NAMES

from ..conftest import TENANT


@pytest.fixture
def store(tmp_path):
    store = DuckDBStore(tmp_path / "nested" / "analytics.duckdb")
    store.connect()
    yield store
    store.close()


class TestSchema:
    """Schema creation."""

    def test_tables_match_row_types(self):
        """Test every row type has a table and vice versa."""
        assert set(TABLE_SCHEMAS) == set(TABLE_NAMES)

    def test_connect_creates_file_and_tables(self, store, tmp_path):
        """Test connect creates parent directories and all tables."""
        assert (tmp_path / "nested" / "analytics.duckdb").exists()
        assert store.table_counts() == {table: 0 for table in TABLE_NAMES}

    def test_connect_is_idempotent(self, store):
        """Test a second connect is a no-op."""
        store.connect()
        assert store.connected


class TestInsert:
    """Bulk inserts."""

    def test_insert_rows(self, store):
        """Test rows land with their normalized timestamp text."""
        store.insert("software", [
            {"tenant_id": "t", "host_id": "h", "timestamp": "2025-04-21 08:38:47",
             "name": "nginx", "version": "1.18.0"},
            {"tenant_id": "t", "host_id": "h", "timestamp": "2025-04-21 08:38:47",
             "name": "node", "version": "16.13.0"},
        ])
        rows = store.fetch_rows("software")
        assert [r["name"] for r in rows] == ["nginx", "node"]
        assert rows[0]["timestamp"] == "2025-04-21 08:38:47"

    def test_unknown_table_rejected(self, store):
        """Test inserting into a table outside the schema fails early."""
        with pytest.raises(ValueError):
            store.insert("users", [{"a": 1}])

    def test_failed_insert_is_atomic(self, store):
        """Test a batch with one bad row writes nothing."""
        with pytest.raises(Exception):
            store.insert("disk_stats", [
                {"tenant_id": "t", "host_id": "h", "timestamp": "2025-04-21 08:38:47",
                 "name": "sda1", "total_space": 100},
                {"tenant_id": "t", "host_id": "h", "timestamp": "2025-04-21 08:38:47",
                 "name": "sdb1", "total_space": "lots"},
            ])
        assert store.table_counts()["disk_stats"] == 0

    def test_close_is_idempotent(self, tmp_path):
        """Test closing twice does not raise."""
        store = DuckDBStore(tmp_path / "a.duckdb")
        store.connect()
        store.close()
        store.close()
        assert not store.connected


class TestEndToEnd:
    """Jobs written through the real store."""

    def test_realtime_and_other_jobs(self, store, realtime_payload, other_payload):
        """Test both scan kinds fill their tables."""
        coordinator = IngestionCoordinator(BatchWriter(store))

        async def scenario():
            await coordinator.process_job({"jobData": {"tenant": TENANT, "payload": realtime_payload}})
            await coordinator.process_job({"payload": other_payload})

        asyncio.run(scenario())

        assert store.table_counts() == {
            "resource_stats": 1,
            "disk_stats": 2,
            "network_stats": 1,
            "gpu_stats": 1,
            "services": 2,
            "service_gpu_usage": 2,
            "software": 1,
        }
        services = store.fetch_rows("services")
        assert {r["tenant_id"] for r in services} == {"default-tenant"}
        assert [r["enabled"] for r in services] == [1, 0]

    def test_malformed_timestamps_pass_through(self, store, realtime_payload, other_payload):
        """Test garbage and missing timestamps are stored as given and the jobs succeed."""
        realtime_payload["timestamp"] = "not a timestamp"
        del realtime_payload["resource_stats"]["network_stats"][0]["timestamp"]
        del other_payload["timestamp"]
        coordinator = IngestionCoordinator(BatchWriter(store))

        async def scenario():
            return [
                await coordinator.process_job({"jobData": {"tenant": TENANT, "payload": realtime_payload}}),
                await coordinator.process_job({"jobData": {"tenant": TENANT, "payload": other_payload}}),
            ]

        results = asyncio.run(scenario())

        assert [r["success"] for r in results] == [True, True]
        assert store.fetch_rows("resource_stats")[0]["timestamp"] == "not a timestamp"
        network = store.fetch_rows("network_stats")[0]
        assert network["timestamp"] == "not a timestamp"
        assert network["interface_timestamp"] == ""
        assert [r["timestamp"] for r in store.fetch_rows("software")] == [""]
        assert coordinator.stats.snapshot()["failed"] == 0

    def test_rejected_table_fails_job_but_not_siblings(self, store, realtime_payload):
        """Test a store rejection surfaces as a write failure of its table only."""
        realtime_payload["resource_stats"]["disks"][1]["total_space"] = "lots"
        coordinator = IngestionCoordinator(BatchWriter(store))

        with pytest.raises(JobFailed) as exc_info:
            asyncio.run(coordinator.process_job({"jobData": {"tenant": TENANT, "payload": realtime_payload}}))

        failure = exc_info.value.first
        assert failure.table == "disk_stats"
        # the fallback halves are tried once each; the valid disk still lands
        assert failure.rows_written == 1
        counts = store.table_counts()
        assert counts["disk_stats"] == 1
        assert counts["resource_stats"] == 1
        assert counts["network_stats"] == 1
