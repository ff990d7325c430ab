# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Configuration management for the HostScan worker.

Values come from defaults, then ~/.hostscan/config.yaml (or an explicit
path / HOSTSCAN_CONFIG), then HOSTSCAN_* environment variables.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0


@dataclass
class QueueConfig:
    stream: str = "hostscan:scans"
    consumer_group: str = "scan_processors"
    consumer_name: str = "scan-worker-1"
    block_ms: int = 1000
    max_deliveries: int = 3
    claim_idle_ms: int = 300000
    claim_interval_seconds: float = 30.0
    dlq_stream: str = "hostscan:dlq"
    max_length: int = 100000


@dataclass
class StoreConfig:
    db_path: str = "~/.hostscan/analytics.duckdb"

    def resolved_path(self) -> Path:
        """Database path with ~ expanded (':memory:' is kept as-is)."""
        if self.db_path == ":memory:":
            return Path(self.db_path)
        return Path(self.db_path).expanduser()


@dataclass
class WorkerConfig:
    concurrency: int = 10
    log_every: int = 100


@dataclass
class LoggingConfig:
    level: str = "INFO"


# (env var, section, key, converter)
ENV_OVERRIDES = [
    ("HOSTSCAN_REDIS_HOST", "redis", "host", str),
    ("HOSTSCAN_REDIS_PORT", "redis", "port", int),
    ("HOSTSCAN_REDIS_DB", "redis", "db", int),
    ("HOSTSCAN_REDIS_PASSWORD", "redis", "password", str),
    ("HOSTSCAN_QUEUE_STREAM", "queue", "stream", str),
    ("HOSTSCAN_CONSUMER_NAME", "queue", "consumer_name", str),
    ("HOSTSCAN_DB_PATH", "store", "db_path", str),
    ("HOSTSCAN_CONCURRENCY", "worker", "concurrency", int),
    ("HOSTSCAN_LOG_EVERY", "worker", "log_every", int),
    ("HOSTSCAN_LOG_LEVEL", "logging", "level", str),
]


def default_config_path() -> Path:
    env_path = os.environ.get("HOSTSCAN_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".hostscan" / "config.yaml"


@dataclass
class Config:
    """Worker configuration container."""

    redis: RedisConfig = field(default_factory=RedisConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Config file path
    config_path: Optional[Path] = None

    def __post_init__(self):
        """Load file and environment overrides after creation."""
        if self.config_path is None:
            self.config_path = default_config_path()
        else:
            self.config_path = Path(self.config_path).expanduser()

        if self.config_path.exists():
            self.load_from_file()

        self.load_from_env()

    def _sections(self) -> Dict[str, Any]:
        return {
            "redis": self.redis,
            "queue": self.queue,
            "store": self.store,
            "worker": self.worker,
            "logging": self.logging,
        }

    def load_from_file(self) -> None:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load config file {self.config_path}: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {self.config_path}: top level is not a mapping")
            return

        for name, section in self._sections().items():
            values = data.get(name)
            if values is None:
                continue
            if not isinstance(values, dict):
                logger.warning(f"Ignoring config section '{name}': not a mapping")
                continue

            known = {f.name for f in fields(section)}
            for key, value in values.items():
                if key in known:
                    setattr(section, key, value)
                else:
                    logger.warning(f"Unknown config key: {name}.{key}")

    def load_from_env(self) -> None:
        """Load configuration from environment variables."""
        sections = self._sections()
        for env_name, section, key, convert in ENV_OVERRIDES:
            value = os.environ.get(env_name)
            if value is None or value == "":
                continue
            try:
                setattr(sections[section], key, convert(value))
            except ValueError:
                logger.warning(f"Ignoring {env_name}={value!r}: expected {convert.__name__}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        value: Any = self
        for part in key.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                value = getattr(value, part, None)

            if value is None:
                return default

        return value

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {name: asdict(section) for name, section in self._sections().items()}

    def save_to_file(self) -> None:
        """Save current configuration to YAML file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate configuration values; returns a list of problems."""
        errors = []

        if not 0 < int(self.redis.port) < 65536:
            errors.append("redis.port must be between 1 and 65535")

        if int(self.worker.concurrency) <= 0:
            errors.append("worker.concurrency must be positive")

        if int(self.worker.log_every) <= 0:
            errors.append("worker.log_every must be positive")

        if int(self.queue.max_deliveries) <= 0:
            errors.append("queue.max_deliveries must be positive")

        if int(self.queue.block_ms) < 0:
            errors.append("queue.block_ms must be non-negative")

        return errors
