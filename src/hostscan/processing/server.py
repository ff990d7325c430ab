# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Main server for the HostScan processing layer.

Wires the Redis job queue, the DuckDB store and the ingestion coordinator,
and shuts them down gracefully on SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

import redis

from ..config import Config
from .coordinator import IngestionCoordinator
from .database.duckdb_store import DuckDBStore
from .database.writer import BatchWriter
from .queue.redis_queue import RedisJobQueue

logger = logging.getLogger(__name__)


def create_redis_client(config: Config) -> redis.Redis:
    """Create a Redis client from configuration."""
    redis_config = config.redis
    return redis.Redis(
        host=redis_config.host,
        port=redis_config.port,
        db=redis_config.db,
        password=redis_config.password or None,
        socket_timeout=redis_config.socket_timeout,
        socket_connect_timeout=redis_config.socket_connect_timeout,
        decode_responses=False,  # We handle encoding/decoding
    )


def create_job_queue(config: Config, redis_client: redis.Redis) -> RedisJobQueue:
    """Create the scan job queue from configuration."""
    queue_config = config.queue
    return RedisJobQueue(
        redis_client,
        stream_name=queue_config.stream,
        consumer_group=queue_config.consumer_group,
        consumer_name=queue_config.consumer_name,
        block_ms=queue_config.block_ms,
        max_deliveries=queue_config.max_deliveries,
        claim_idle_ms=queue_config.claim_idle_ms,
        claim_interval=queue_config.claim_interval_seconds,
        dlq_stream=queue_config.dlq_stream,
        max_length=queue_config.max_length,
    )


class IngestionServer:
    """
    Main server for scan ingestion.

    Manages:
    - DuckDB store connection
    - Redis connection and job queue
    - Ingestion coordinator
    - Graceful shutdown
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize ingestion server.

        Args:
            config: Configuration instance (creates default if not provided)
        """
        self.config = config or Config()

        self.store: Optional[DuckDBStore] = None
        self.redis_client: Optional[redis.Redis] = None
        self.queue: Optional[RedisJobQueue] = None
        self.coordinator: Optional[IngestionCoordinator] = None
        self.running = False
        self._stop_requested = False
        self._stopped = False

    def _initialize_store(self) -> None:
        """Initialize DuckDB store and schema."""
        self.store = DuckDBStore(self.config.store.resolved_path())
        self.store.connect()

    def _initialize_redis(self) -> None:
        """Initialize Redis connection."""
        logger.info("Initializing Redis connection")

        self.redis_client = create_redis_client(self.config)

        try:
            self.redis_client.ping()
            logger.info("Redis connection established")
        except redis.ConnectionError as e:
            raise RuntimeError(f"Failed to connect to Redis: {e}") from e

    def _initialize_queue(self) -> None:
        """Initialize job queue and consumer group."""
        self.queue = create_job_queue(self.config, self.redis_client)
        self.queue.ensure_group()
        logger.info(f"Consuming scan jobs from {self.queue.stream_name} as {self.queue.consumer_name}")

    def _initialize_coordinator(self) -> None:
        """Initialize ingestion coordinator."""
        self.coordinator = IngestionCoordinator(
            BatchWriter(self.store),
            concurrency=self.config.worker.concurrency,
            log_every=self.config.worker.log_every,
        )

    async def start(self) -> None:
        """Start the server; returns once the coordinator has drained."""
        if self.running:
            logger.warning("Server already running")
            return

        logger.info("Starting HostScan ingestion server...")

        try:
            self._initialize_store()
            self._initialize_redis()
            self._initialize_queue()
            self._initialize_coordinator()
        except Exception as e:
            logger.error(f"Failed to start server: {e}")
            await self.stop()
            raise

        if self._stop_requested:
            return

        self.running = True
        await self.coordinator.run(self.queue)

    def request_stop(self) -> None:
        """Stop pulling new jobs; safe to call from a signal handler."""
        self._stop_requested = True
        if self.coordinator:
            self.coordinator.stop()

    async def stop(self) -> None:
        """Stop the server gracefully: drain jobs, then close queue, Redis and store."""
        if self._stopped:
            return
        self._stopped = True

        logger.info("Stopping server...")
        self.running = False

        if self.coordinator:
            self.coordinator.stop()
            await self.coordinator.drain()

        if self.queue:
            self.queue.close()

        if self.redis_client:
            self.redis_client.close()
            logger.info("Redis connection closed")

        if self.store:
            self.store.close()

        logger.info("Server stopped")


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


async def serve(config: Config) -> None:
    """Run a server until SIGINT/SIGTERM."""
    server = IngestionServer(config)
    loop = asyncio.get_running_loop()

    def request_stop(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name} signal, shutting down worker...")
        server.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_stop, sig)

    try:
        await server.start()
    finally:
        await server.stop()


def main() -> None:
    """Main entry point."""
    config = Config()
    setup_logging(config.logging.level)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
