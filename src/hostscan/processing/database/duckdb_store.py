# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
DuckDB analytics store.

Single logical operation for the pipeline: ``insert(table, rows)`` with
JSON-row-shaped dicts. Each call is one transaction, so a bulk insert
lands completely or not at all. There is no grouping across calls.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from .schema import TABLE_SCHEMAS, create_schema

logger = logging.getLogger(__name__)


class DuckDBStore:
    """
    DuckDB client for the scan analytics tables.

    The connection is long-lived and shared. Each insert runs on its own
    cursor so concurrent calls from worker threads do not interfere.
    """

    def __init__(self, database_path: Optional[Path] = None):
        """
        Initialize DuckDB store.

        Args:
            database_path: Path to DuckDB database file
                          (default: ~/.hostscan/analytics.duckdb, ':memory:' for tests)
        """
        if database_path is None:
            database_path = Path.home() / ".hostscan" / "analytics.duckdb"

        self.database_path = database_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()

        logger.info(f"DuckDB store initialized (database: {self.database_path})")

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        """Connect to DuckDB database and initialize schema."""
        with self._lock:
            if self._connection is not None:
                return

            target = str(self.database_path)
            if target != ":memory:":
                Path(target).expanduser().parent.mkdir(parents=True, exist_ok=True)
                target = str(Path(target).expanduser())

            logger.info(f"Connecting to DuckDB: {target}")
            self._connection = duckdb.connect(target)
            create_schema(self._connection)

        logger.info("DuckDB connection established and schema initialized")

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self.connect()
        with self._lock:
            if self._connection is None:
                raise RuntimeError("DuckDB store is closed")
            return self._connection.cursor()

    def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        """
        Insert rows into a table in a single transaction.

        Args:
            table: Target table name
            rows: Same-shape row dicts; column list is taken from the first row

        Raises:
            ValueError: If the table is not part of the schema
            duckdb.Error: If the insert fails (nothing from this call is kept)
        """
        if table not in TABLE_SCHEMAS:
            raise ValueError(f"Unknown table: {table}")
        if not rows:
            return

        columns = list(rows[0].keys())
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        values = [tuple(row.get(column) for column in columns) for row in rows]

        cursor = self._cursor()
        try:
            cursor.execute("BEGIN TRANSACTION")
            try:
                cursor.executemany(sql, values)
                cursor.execute("COMMIT")
            except Exception:
                cursor.execute("ROLLBACK")
                raise
        finally:
            cursor.close()

    def table_counts(self) -> Dict[str, int]:
        """Row count per analytics table."""
        cursor = self._cursor()
        try:
            return {
                table: cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in TABLE_SCHEMAS
            }
        finally:
            cursor.close()

    def fetch_rows(self, table: str) -> List[Dict[str, Any]]:
        """Return all rows of a table as dicts (diagnostics and tests)."""
        if table not in TABLE_SCHEMAS:
            raise ValueError(f"Unknown table: {table}")
        cursor = self._cursor()
        try:
            result = cursor.execute(f"SELECT * FROM {table}")
            columns = [description[0] for description in result.description]
            return [dict(zip(columns, row)) for row in result.fetchall()]
        finally:
            cursor.close()

    def close(self) -> None:
        """Close the DuckDB connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.info("DuckDB connection closed")
