"""Configuration loading for notemesh replicas."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


def _default_endpoints() -> dict[str, str]:
    return {
        "replica1": "http://replica1:4001",
        "replica2": "http://replica2:4002",
        "replica3": "http://replica3:4003",
    }


@dataclass
class ReplicaConfig:
    name: str = "replica-unknown"
    host: str = "0.0.0.0"
    port: int = 4001


@dataclass
class PeersConfig:
    """Static peer table; the local replica is filtered out by name."""

    endpoints: dict[str, str] = field(default_factory=_default_endpoints)


@dataclass
class SyncConfig:
    """Timeouts for replica-to-replica calls."""

    pull_timeout_seconds: float = 2.0
    push_timeout_seconds: float = 1.0


@dataclass
class LoggingConfig:
    level: str = "info"
    json: bool = False


@dataclass
class Config:
    replica: ReplicaConfig = field(default_factory=ReplicaConfig)
    peers: PeersConfig = field(default_factory=PeersConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with NOTEMESH_ prefix."""
    return os.environ.get(f"NOTEMESH_{key}", default)


def _parse_peers(value: str) -> dict[str, str]:
    """Parse ``name=url,name=url`` into an endpoint table."""
    endpoints = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, url = item.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ValueError(f"Invalid peer entry: {item!r} (expected name=url)")
        endpoints[name.strip()] = url.strip()
    return endpoints


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Bare variables used by container deployments
    if name := os.environ.get("REPLICA_NAME"):
        config.replica.name = name
    if port := os.environ.get("PORT"):
        config.replica.port = int(port)

    # Replica overrides
    if name := _get_env("REPLICA_NAME"):
        config.replica.name = name
    if host := _get_env("HOST"):
        config.replica.host = host
    if port := _get_env("PORT"):
        config.replica.port = int(port)

    # Peer table
    if peers := _get_env("PEERS"):
        config.peers.endpoints = _parse_peers(peers)

    # Sync timeouts
    if pull_timeout := _get_env("PULL_TIMEOUT"):
        config.sync.pull_timeout_seconds = float(pull_timeout)
    if push_timeout := _get_env("PUSH_TIMEOUT"):
        config.sync.push_timeout_seconds = float(push_timeout)

    # Logging
    if level := _get_env("LOG_LEVEL"):
        config.logging.level = level.lower()
    if json_logs := _get_env("LOG_JSON"):
        config.logging.json = json_logs.lower() in ("true", "1", "yes")

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None or missing, defaults
            are used.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse replica config
            if "replica" in data:
                replica_data = data["replica"]
                config.replica = ReplicaConfig(
                    name=replica_data.get("name", config.replica.name),
                    host=replica_data.get("host", config.replica.host),
                    port=int(replica_data.get("port", config.replica.port)),
                )

            # Parse peer table
            if "peers" in data:
                endpoints = data["peers"] or {}
                if not isinstance(endpoints, dict):
                    raise ValueError("'peers' must be a mapping of name to URL")
                config.peers = PeersConfig(
                    endpoints={str(k): str(v) for k, v in endpoints.items()}
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    pull_timeout_seconds=float(
                        sync_data.get(
                            "pull_timeout_seconds", config.sync.pull_timeout_seconds
                        )
                    ),
                    push_timeout_seconds=float(
                        sync_data.get(
                            "push_timeout_seconds", config.sync.push_timeout_seconds
                        )
                    ),
                )

            # Parse logging config
            if "logging" in data:
                log_data = data["logging"]
                config.logging = LoggingConfig(
                    level=log_data.get("level", config.logging.level),
                    json=log_data.get("json", config.logging.json),
                )

    return _apply_env_overrides(config)
