# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Running throughput statistics for processed jobs.
"""

import threading
from typing import Any, Dict, Optional


class JobStats:
    """
    Counts fully-attempted jobs and their processing latency.

    Features:
    - Total and per-interval average latency
    - Periodic summary line every ``log_every`` jobs
    - Thread-safe operations
    """

    def __init__(self, log_every: int = 100):
        """
        Initialize job stats.

        Args:
            log_every: Number of jobs per reporting interval
        """
        self.log_every = max(1, log_every)
        self._lock = threading.Lock()
        self._processed = 0
        self._failed = 0
        self._total_ms = 0.0
        self._interval_count = 0
        self._interval_ms = 0.0

    def record(self, duration_ms: float, success: bool = True) -> Optional[str]:
        """
        Record one attempted job.

        Args:
            duration_ms: Processing time of the job
            success: Whether the job succeeded

        Returns:
            Summary line when the reporting interval is complete, else None
        """
        with self._lock:
            self._processed += 1
            if not success:
                self._failed += 1
            self._total_ms += duration_ms
            self._interval_count += 1
            self._interval_ms += duration_ms

            if self._interval_count < self.log_every:
                return None

            interval_avg = self._interval_ms / self._interval_count
            total_avg = self._total_ms / self._processed
            line = (
                f"{self._processed} jobs processed "
                f"(total avg: {total_avg:.2f} ms, last {self._interval_count} avg: {interval_avg:.2f} ms)"
            )
            self._interval_count = 0
            self._interval_ms = 0.0
            return line

    def snapshot(self) -> Dict[str, Any]:
        """Get a copy of the current counters."""
        with self._lock:
            return {
                'processed': self._processed,
                'failed': self._failed,
                'avg_ms': self._total_ms / self._processed if self._processed else 0.0,
            }
