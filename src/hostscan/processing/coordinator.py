# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Ingestion coordinator.

Pulls scan jobs from the queue and runs resolve -> decompose -> write for
each one, with at most ``concurrency`` jobs in flight. Any failure fails
only its own job; the queue's redelivery policy takes it from there.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Set

from .database.writer import BatchWriter
from .decomposer import decompose
from .envelope import resolve
from .errors import HostScanError, JobFailed, WriteFailure
from .queue.redis_queue import QueueJob
from .stats import JobStats

logger = logging.getLogger(__name__)


class JobSource(Protocol):
    """Queue boundary used by the coordinator."""

    async def read(self, count: int) -> List[QueueJob]:
        ...

    async def ack(self, job: QueueJob) -> None:
        ...

    async def fail(self, job: QueueJob, error: BaseException) -> None:
        ...


class IngestionCoordinator:
    """
    Bounded-concurrency driver for scan jobs.

    Features:
    - Fixed number of in-flight jobs (backpressure on queue reads)
    - Independent per-table writes within a job
    - Running job count and latency, logged every ``log_every`` jobs
    - Graceful drain of in-flight jobs on stop
    """

    def __init__(self, writer: BatchWriter, concurrency: int = 10, log_every: int = 100):
        """
        Initialize coordinator.

        Args:
            writer: Batch writer for record sets
            concurrency: Maximum number of jobs processed at once
            log_every: Jobs between throughput log lines
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.writer = writer
        self.concurrency = concurrency
        self.stats = JobStats(log_every)
        self.running = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def process_job(self, raw_job: Any) -> Dict[str, Any]:
        """
        Process one raw job end to end.

        Args:
            raw_job: Job data of any envelope shape

        Returns:
            {"success": True, "scanType": <kind>}

        Raises:
            UnrecognizedEnvelope: If the job shape is unknown (nothing is written)
            JobFailed: If any table write failed (other tables were still attempted)
        """
        event = resolve(raw_job)
        scan_type = event.scan_type

        start = time.perf_counter()
        success = False
        try:
            record_sets = decompose(event)

            failures: List[WriteFailure] = []
            for table, rows in record_sets.items():
                try:
                    await self.writer.write(table, rows)
                except WriteFailure as e:
                    failures.append(e)

            if failures:
                raise JobFailed(scan_type, failures) from failures[0]
            success = True
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            summary = self.stats.record(duration_ms, success=success)
            if summary:
                logger.info(summary)

        return {"success": True, "scanType": scan_type}

    async def handle(self, queue: JobSource, job: QueueJob) -> Optional[Dict[str, Any]]:
        """
        Process a queued job and report the outcome to the queue.

        Never raises: every error is converted into a queue failure.
        """
        try:
            result = await self.process_job(job.data)
        except HostScanError as e:
            logger.error(f"Job {job.id} failed: {e}")
            await self._report_failure(queue, job, e)
            return None
        except Exception as e:
            logger.error(f"Job {job.id} failed with unexpected error: {e}", exc_info=True)
            await self._report_failure(queue, job, e)
            return None

        try:
            await queue.ack(job)
        except Exception as e:
            logger.error(f"Failed to acknowledge job {job.id}: {e}")
        return result

    async def _report_failure(self, queue: JobSource, job: QueueJob, error: Exception) -> None:
        try:
            await queue.fail(job, error)
        except Exception as report_error:
            logger.error(f"Failed to report failure of job {job.id}: {report_error}")

    def _spawn(self, queue: JobSource, job: QueueJob) -> None:
        task = asyncio.create_task(self.handle(queue, job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self, queue: JobSource) -> None:
        """
        Main consumer loop.

        Reads only as many jobs as there are free slots, so at most
        ``concurrency`` jobs are ever in flight.
        """
        self.running = True
        logger.info(f"Ingestion coordinator started (concurrency={self.concurrency})")

        while self.running:
            free = self.concurrency - len(self._tasks)
            if free <= 0:
                await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)
                continue

            try:
                jobs = await queue.read(free)
            except asyncio.CancelledError:
                logger.info("Coordinator cancelled")
                break
            except Exception as e:
                logger.error(f"Error reading from queue: {e}")
                await asyncio.sleep(1)  # Back off on error
                continue

            for job in jobs:
                self._spawn(queue, job)

            if not jobs:
                await asyncio.sleep(0.01)

        await self.drain()
        logger.info("Ingestion coordinator stopped")

    async def drain(self) -> None:
        """Wait for all in-flight jobs to finish."""
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight jobs to finish")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stop(self) -> None:
        """Stop pulling new jobs; in-flight jobs are allowed to finish."""
        self.running = False
