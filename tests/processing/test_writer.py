# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the batch writer's chunked-retry policy.
"""

import asyncio

import pytest

from hostscan.processing.database.writer import BatchWriter, split_in_half
from hostscan.processing.errors import WriteFailure
from hostscan.processing.models import SoftwareRow

from ..conftest import FakeStore


def _rows(n):
    return [
        SoftwareRow(tenant_id="t", host_id="h", timestamp="2025-01-01 00:00:00",
                    name=f"pkg-{i}", version="1.0")
        for i in range(n)
    ]


class TestSplitInHalf:
    """Chunk sizing for the fallback pass."""

    @pytest.mark.parametrize("n, sizes", [
        (2, [1, 1]),
        (4, [2, 2]),
        (5, [3, 2]),
        (7, [4, 3]),
    ])
    def test_first_chunk_rounded_up(self, n, sizes):
        """Test the first chunk holds ceil(n/2) rows and there are two chunks."""
        assert [len(c) for c in split_in_half(list(range(n)))] == sizes

    def test_order_preserved(self):
        """Test chunks keep the original row order."""
        assert split_in_half([1, 2, 3]) == [[1, 2], [3]]


class TestPrimaryPath:
    """Successful bulk inserts."""

    def test_single_bulk_insert(self, fake_store):
        """Test all rows go in one insert call."""
        written = asyncio.run(BatchWriter(fake_store).write("software", _rows(3)))
        assert written == 3
        assert fake_store.calls == [("software", 3)]
        assert [r["name"] for r in fake_store.rows("software")] == ["pkg-0", "pkg-1", "pkg-2"]

    def test_rows_are_json_shaped(self, fake_store):
        """Test the store receives plain dicts with the row fields."""
        asyncio.run(BatchWriter(fake_store).write("software", _rows(1)))
        assert fake_store.rows("software")[0] == {
            "tenant_id": "t", "host_id": "h", "timestamp": "2025-01-01 00:00:00",
            "name": "pkg-0", "version": "1.0",
        }


class TestChunkedRetry:
    """Failure handling with one level of binary split."""

    def test_partial_durability(self):
        """Test 4-row failure -> two 2-row chunks, one lands, write still fails."""
        def fail(table, rows):
            # whole batch fails; the chunk holding pkg-0 fails too
            return len(rows) == 4 or rows[0]["name"] == "pkg-0"

        store = FakeStore(fail_when=fail)
        with pytest.raises(WriteFailure) as exc_info:
            asyncio.run(BatchWriter(store).write("software", _rows(4)))

        assert store.calls == [("software", 4), ("software", 2), ("software", 2)]
        assert [r["name"] for r in store.rows("software")] == ["pkg-2", "pkg-3"]

        failure = exc_info.value
        assert failure.table == "software"
        assert failure.row_count == 4
        assert failure.rows_written == 2
        assert failure.partial

    def test_original_error_propagated_even_if_all_chunks_land(self):
        """Test the primary error is raised although both halves succeeded."""
        store = FakeStore(fail_when=lambda table, rows: len(rows) == 4)
        with pytest.raises(WriteFailure) as exc_info:
            asyncio.run(BatchWriter(store).write("software", _rows(4)))

        assert len(store.rows("software")) == 4
        assert exc_info.value.rows_written == 4
        assert isinstance(exc_info.value.original, RuntimeError)
        assert exc_info.value.__cause__ is exc_info.value.original
        assert str(exc_info.value.original) == "insert into software rejected"

    def test_no_recursive_split(self):
        """Test failing chunks are not split again."""
        store = FakeStore(fail_when=lambda table, rows: True)
        with pytest.raises(WriteFailure) as exc_info:
            asyncio.run(BatchWriter(store).write("software", _rows(8)))

        assert store.calls == [("software", 8), ("software", 4), ("software", 4)]
        assert exc_info.value.rows_written == 0
        assert not exc_info.value.partial

    def test_single_row_no_fallback(self):
        """Test a one-row batch fails directly without a retry."""
        store = FakeStore(fail_when=lambda table, rows: True)
        with pytest.raises(WriteFailure):
            asyncio.run(BatchWriter(store).write("software", _rows(1)))
        assert store.calls == [("software", 1)]

    def test_chunk_failure_does_not_abort_sibling(self):
        """Test the second half is still attempted when the first half fails."""
        store = FakeStore(fail_when=lambda table, rows: len(rows) != 2)
        with pytest.raises(WriteFailure):
            asyncio.run(BatchWriter(store).write("software", _rows(5)))

        assert store.calls == [("software", 5), ("software", 3), ("software", 2)]
        assert [r["name"] for r in store.rows("software")] == ["pkg-3", "pkg-4"]
