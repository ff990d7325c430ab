# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Scan job queue on Redis Streams.

Jobs are stream entries with a single ``data`` field holding the job as
JSON. Consumption goes through a consumer group: successful jobs are
acknowledged, failed jobs stay in the Pending Entries List (PEL) and are
reclaimed after ``claim_idle_ms``. Once a job has been delivered
``max_deliveries`` times a failure moves it to the dead letter stream.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

DATA_FIELD = "data"


@dataclass
class QueueJob:
    """A job taken from the stream."""

    id: str
    data: Any
    deliveries: int = 1


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisJobQueue:
    """
    Consumer-group access to the scan job stream.

    Blocking redis-py calls are run in worker threads so the event loop
    stays free for in-flight jobs.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        stream_name: str = "hostscan:scans",
        consumer_group: str = "scan_processors",
        consumer_name: str = "scan-worker-1",
        block_ms: int = 1000,
        max_deliveries: int = 3,
        claim_idle_ms: int = 300000,
        claim_interval: float = 30.0,
        dlq_stream: str = "hostscan:dlq",
        max_length: int = 100000,
    ):
        """
        Initialize job queue.

        Args:
            redis_client: Redis client instance
            stream_name: Stream holding scan jobs
            consumer_group: Consumer group name
            consumer_name: Consumer name (unique per instance)
            block_ms: Blocking timeout for XREADGROUP (ms)
            max_deliveries: Deliveries before a failing job is dead-lettered
            claim_idle_ms: Idle time before a pending job is reclaimed (ms)
            claim_interval: Seconds between pending-entry reclaim passes
            dlq_stream: Dead letter stream name
            max_length: Approximate cap for the job and dead letter streams
        """
        self.redis_client = redis_client
        self.stream_name = stream_name
        self.consumer_group = consumer_group
        self.consumer_name = consumer_name
        self.block_ms = block_ms
        self.max_deliveries = max_deliveries
        self.claim_idle_ms = claim_idle_ms
        self.claim_interval = claim_interval
        self.dlq_stream = dlq_stream
        self.max_length = max_length
        self._last_claim: Optional[float] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_group(self) -> None:
        """Ensure consumer group exists, create if not."""
        try:
            self.redis_client.xgroup_create(
                name=self.stream_name,
                groupname=self.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(f"Created consumer group {self.consumer_group}")
        except redis.exceptions.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug(f"Consumer group {self.consumer_group} already exists")
            else:
                raise

    def _decode_job(self, message_id: Any, fields: Optional[Dict[Any, Any]], deliveries: int) -> Optional[QueueJob]:
        msg_id = _text(message_id)
        if fields is None:
            return None

        raw = None
        for key, value in fields.items():
            if _text(key) == DATA_FIELD:
                raw = _text(value)
                break

        if raw is None:
            # Entry without a data field: hand the flat fields over as the job
            data: Any = {_text(k): _text(v) for k, v in fields.items()}
        else:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = raw

        return QueueJob(id=msg_id, data=data, deliveries=deliveries)

    async def read(self, count: int) -> List[QueueJob]:
        """
        Read up to ``count`` jobs, reclaiming stale pending jobs first when due.

        Args:
            count: Maximum number of jobs to return

        Returns:
            List of jobs (empty on timeout or after close)
        """
        if self._closed or count <= 0:
            return []

        now = time.monotonic()
        if self._last_claim is None or now - self._last_claim >= self.claim_interval:
            self._last_claim = now
            reclaimed = await self._reclaim(count)
            if reclaimed:
                return reclaimed

        messages = await asyncio.to_thread(
            self.redis_client.xreadgroup,
            self.consumer_group,
            self.consumer_name,
            {self.stream_name: ">"},
            count=count,
            block=self.block_ms,
        )

        jobs = []
        for _stream, stream_messages in messages or []:
            for message_id, fields in stream_messages:
                job = self._decode_job(message_id, fields, deliveries=1)
                if job is not None:
                    jobs.append(job)
        return jobs

    async def _reclaim(self, count: int) -> List[QueueJob]:
        """Claim jobs that have been pending longer than ``claim_idle_ms``."""
        pending = await asyncio.to_thread(
            self.redis_client.xpending_range,
            self.stream_name,
            self.consumer_group,
            min="-",
            max="+",
            count=count,
            idle=self.claim_idle_ms,
        )
        if not pending:
            return []

        delivered = {_text(entry["message_id"]): entry.get("times_delivered", 1) for entry in pending}
        claimed = await asyncio.to_thread(
            self.redis_client.xclaim,
            self.stream_name,
            self.consumer_group,
            self.consumer_name,
            self.claim_idle_ms,
            list(delivered.keys()),
        )

        jobs = []
        for message_id, fields in claimed or []:
            msg_id = _text(message_id)
            job = self._decode_job(message_id, fields, deliveries=delivered.get(msg_id, 1) + 1)
            if job is None:
                # Entry was trimmed from the stream while pending
                await asyncio.to_thread(self.redis_client.xack, self.stream_name, self.consumer_group, msg_id)
                continue
            jobs.append(job)

        if jobs:
            logger.info(f"Reclaimed {len(jobs)} pending jobs from {self.stream_name}")
        return jobs

    async def ack(self, job: QueueJob) -> None:
        """Acknowledge a successfully processed job."""
        await asyncio.to_thread(self.redis_client.xack, self.stream_name, self.consumer_group, job.id)

    async def fail(self, job: QueueJob, error: BaseException) -> None:
        """
        Report a failed job.

        The job stays pending for redelivery until it has been delivered
        ``max_deliveries`` times; then it is moved to the dead letter stream.

        Args:
            job: Failed job
            error: Exception that caused the failure
        """
        if job.deliveries < self.max_deliveries:
            logger.info(f"Job {job.id} will be retried (delivery attempt {job.deliveries}/{self.max_deliveries})")
            return

        dlq_data = {
            DATA_FIELD: json.dumps(job.data, default=str),
            "error": str(error),
            "failed_at": str(time.time()),
            "original_message_id": job.id,
            "delivery_count": str(job.deliveries),
        }
        await asyncio.to_thread(
            self.redis_client.xadd,
            self.dlq_stream,
            dlq_data,
            maxlen=self.max_length,
            approximate=True,
        )
        await asyncio.to_thread(self.redis_client.xack, self.stream_name, self.consumer_group, job.id)
        logger.warning(f"Moved job {job.id} to DLQ after {job.deliveries} delivery attempts")

    async def enqueue(self, job_data: Any) -> str:
        """
        Append a job to the stream.

        Args:
            job_data: JSON-serializable job object

        Returns:
            Stream entry ID of the new job
        """
        message_id = await asyncio.to_thread(
            self.redis_client.xadd,
            self.stream_name,
            {DATA_FIELD: json.dumps(job_data)},
            maxlen=self.max_length,
            approximate=True,
        )
        return _text(message_id)

    def close(self) -> None:
        """Stop consuming; later reads return nothing."""
        if not self._closed:
            self._closed = True
            logger.info(f"Stopped consuming from {self.stream_name}")
