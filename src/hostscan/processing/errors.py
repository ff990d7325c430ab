# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Exceptions raised by the scan processing pipeline.

Unknown scan types and unparseable timestamps do not raise:
the former is a logged no-op and the latter degrades to passthrough.
"""

from typing import List, Optional


class HostScanError(Exception):
    """Base class for scan processing errors."""


class UnrecognizedEnvelope(HostScanError):
    """Raised when a raw job matches none of the known envelope shapes."""

    def __init__(self, snippet: str):
        self.snippet = snippet
        super().__init__(f"Unrecognized job data structure: {snippet}")


class WriteFailure(HostScanError):
    """
    Raised when the bulk insert of a record set failed.

    Some rows may still have landed through the chunked fallback;
    ``rows_written`` says how many. ``original`` is the error from the
    primary insert and is also chained as ``__cause__``.
    """

    def __init__(self, table: str, row_count: int, original: Exception, rows_written: int = 0):
        self.table = table
        self.row_count = row_count
        self.original = original
        self.rows_written = rows_written
        super().__init__(f"{table}: {original}")

    @property
    def partial(self) -> bool:
        """True if some, but not all, rows were written."""
        return 0 < self.rows_written < self.row_count


class JobFailed(HostScanError):
    """Raised when one or more table writes of a single job failed."""

    def __init__(self, scan_type: str, failures: List[WriteFailure]):
        self.scan_type = scan_type
        self.failures = failures
        tables = ", ".join(f.table for f in failures)
        super().__init__(f"{len(failures)} table write(s) failed for {scan_type} scan: {tables}")

    @property
    def first(self) -> Optional[WriteFailure]:
        return self.failures[0] if self.failures else None
