"""Configuration loading for sharednotes."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .notes_client import DEFAULT_BASE_URL


@dataclass
class RemoteConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 30.0


@dataclass
class SyncConfig:
    """Configuration for remote polling."""

    poll_interval_ms: int = 3000

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000


@dataclass
class StorageConfig:
    db_path: str = "~/.sharednotes/notes.db"


@dataclass
class Config:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with SHAREDNOTES_ prefix."""
    return os.environ.get(f"SHAREDNOTES_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if base_url := _get_env("BASE_URL"):
        config.remote.base_url = base_url
    if timeout := _get_env("TIMEOUT"):
        config.remote.timeout_seconds = float(timeout)

    if interval := _get_env("POLL_INTERVAL_MS"):
        config.sync.poll_interval_ms = int(interval)

    if db_path := _get_env("DB_PATH"):
        config.storage.db_path = db_path

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None or missing, uses defaults.

    Returns:
        Loaded and validated Config object.

    Raises:
        ValueError: If the poll interval or timeout is not positive.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    base_url=remote_data.get("base_url", config.remote.base_url),
                    timeout_seconds=remote_data.get(
                        "timeout_seconds", config.remote.timeout_seconds
                    ),
                )

            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    poll_interval_ms=sync_data.get(
                        "poll_interval_ms", config.sync.poll_interval_ms
                    ),
                )

            if "storage" in data:
                config.storage = StorageConfig(
                    db_path=data["storage"].get("db_path", config.storage.db_path)
                )

    config = _apply_env_overrides(config)

    if config.sync.poll_interval_ms <= 0:
        raise ValueError(
            f"sync.poll_interval_ms must be positive, got {config.sync.poll_interval_ms}"
        )
    if config.remote.timeout_seconds <= 0:
        raise ValueError(
            f"remote.timeout_seconds must be positive, got {config.remote.timeout_seconds}"
        )

    return config
