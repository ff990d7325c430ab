# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Resilient batch writer for analytics record sets.

Write policy per record set:
1. One bulk insert with all rows.
2. If that fails and there is more than one row, split once into two
   halves (first half rounded up) and insert each half independently.
   A failing half is logged and does not stop the other half. Halves are
   not split again.
3. The primary insert's error is still raised (as WriteFailure), even if
   both halves landed, so the job is reported failed and redelivered.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Protocol, Sequence

from ..errors import WriteFailure
from ..models import Row

logger = logging.getLogger(__name__)

SAMPLE_LENGTH = 300


class RowStore(Protocol):
    """Store boundary: a blocking bulk insert of row dicts into a named table."""

    def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        ...


def split_in_half(rows: List[Any]) -> List[List[Any]]:
    """Split rows into two chunks, the first of ceil(n/2) rows."""
    middle = (len(rows) + 1) // 2
    return [chunk for chunk in (rows[:middle], rows[middle:]) if chunk]


class BatchWriter:
    """
    Writes record sets to the store with a single level of chunked retry.

    Inserts are blocking store calls and run in worker threads so several
    events can write concurrently.
    """

    def __init__(self, store: RowStore):
        """
        Initialize batch writer.

        Args:
            store: Store client exposing insert(table, rows)
        """
        self.store = store

    async def _insert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        await asyncio.to_thread(self.store.insert, table, rows)

    async def write(self, table: str, rows: Sequence[Row]) -> int:
        """
        Persist a record set.

        Args:
            table: Target table name
            rows: Non-empty list of same-shape rows

        Returns:
            Number of rows written

        Raises:
            WriteFailure: If the bulk insert failed, chained from the original error
        """
        data = [row.as_row() if isinstance(row, Row) else dict(row) for row in rows]
        if not data:
            return 0

        sample = json.dumps(data[0], default=str)
        if len(sample) > SAMPLE_LENGTH:
            sample = sample[:SAMPLE_LENGTH] + "..."
        logger.info(f"Inserting {len(data)} records into {table}. Sample: {sample}")

        try:
            await self._insert(table, data)
        except Exception as e:
            logger.error(f"Error inserting data into {table}: {type(e).__name__}: {e}")
            rows_written = 0
            if len(data) > 1:
                rows_written = await self._write_chunks(table, data)
            raise WriteFailure(table, len(data), e, rows_written=rows_written) from e

        logger.info(f"Successfully inserted {len(data)} records into {table}")
        return len(data)

    async def _write_chunks(self, table: str, data: List[Dict[str, Any]]) -> int:
        """Insert each half independently; returns rows that landed."""
        logger.info(f"Attempting fallback with smaller batches for {table}...")

        rows_written = 0
        for chunk in split_in_half(data):
            try:
                await self._insert(table, chunk)
            except Exception as chunk_error:
                logger.error(f"Fallback insert failed for chunk of {len(chunk)} records in {table}: {chunk_error}")
                continue
            rows_written += len(chunk)
            logger.info(f"Successfully inserted chunk of {len(chunk)} records into {table}")

        return rows_written
