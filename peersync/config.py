"""Configuration loading for peersync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .store import validate_key
from .sync.models import Peer
from .sync.resolver import DEFAULT_POLICY


class ConfigError(Exception):
    """Configuration is invalid."""


@dataclass
class NodeConfig:
    name: str = "peersync-node"


@dataclass
class StorageConfig:
    """Where persisted records live."""

    root: str = "~/.peersync/records"

    @property
    def path(self) -> Path:
        return Path(self.root).expanduser()


@dataclass
class SyncConfig:
    """Configuration for the sync cycle."""

    policy: str = DEFAULT_POLICY
    interval_seconds: float = 60.0  # Only used by the scheduling loop
    timeout_seconds: float = 10.0  # Per fetch/push call
    retry_max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    concurrent: bool = False
    push_on_local_win: bool = False


@dataclass
class PeerConfig:
    name: str
    endpoint: str

    def to_peer(self) -> Peer:
        return Peer(name=self.name, endpoint=self.endpoint)


@dataclass
class ServerConfig:
    """Configuration for the peer-facing HTTP server."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    peers: list[PeerConfig] = field(default_factory=list)
    server: ServerConfig = field(default_factory=ServerConfig)

    def peer_list(self) -> list[Peer]:
        """Configured peers, in configuration order."""
        return [p.to_peer() for p in self.peers]


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with PEERSYNC_ prefix."""
    return os.environ.get(f"PEERSYNC_{key}", default)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if name := _get_env("NODE_NAME"):
        config.node.name = name

    if root := _get_env("STORAGE_ROOT"):
        config.storage.root = root

    # Sync overrides
    if policy := _get_env("SYNC_POLICY"):
        config.sync.policy = policy
    if interval := _get_env("SYNC_INTERVAL"):
        config.sync.interval_seconds = float(interval)
    if timeout := _get_env("SYNC_TIMEOUT"):
        config.sync.timeout_seconds = float(timeout)
    if concurrent := _get_env("SYNC_CONCURRENT"):
        config.sync.concurrent = _parse_bool(concurrent)

    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)

    return config


def _parse_peers(data: list) -> list[PeerConfig]:
    """Parse and validate the ordered peer list."""
    if not isinstance(data, list):
        raise ConfigError("'peers' must be a list")

    peers = []
    seen: set[str] = set()
    for index, peer_data in enumerate(data):
        if not isinstance(peer_data, dict):
            raise ConfigError(f"Peer #{index} must be a mapping")

        name = peer_data.get("name")
        endpoint = peer_data.get("endpoint")
        if not name or not endpoint:
            raise ConfigError(f"Peer #{index} needs both 'name' and 'endpoint'")

        name = str(name)
        try:
            validate_key(name)
        except ValueError:
            raise ConfigError(
                f"Peer name {name!r} must be letters, digits, '.', '_' or '-'"
            ) from None
        if name in seen:
            raise ConfigError(f"Duplicate peer name: {name}")
        seen.add(name)

        peers.append(PeerConfig(name=name, endpoint=str(endpoint)))

    return peers


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ConfigError: If the peer list is invalid.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse node config
            if "node" in data:
                config.node = NodeConfig(
                    name=data["node"].get("name", config.node.name)
                )

            # Parse storage config
            if "storage" in data:
                config.storage = StorageConfig(
                    root=data["storage"].get("root", config.storage.root)
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    policy=sync_data.get("policy", config.sync.policy),
                    interval_seconds=sync_data.get(
                        "interval_seconds", config.sync.interval_seconds
                    ),
                    timeout_seconds=sync_data.get(
                        "timeout_seconds", config.sync.timeout_seconds
                    ),
                    retry_max_attempts=sync_data.get(
                        "retry_max_attempts", config.sync.retry_max_attempts
                    ),
                    retry_backoff_seconds=sync_data.get(
                        "retry_backoff_seconds", config.sync.retry_backoff_seconds
                    ),
                    concurrent=sync_data.get("concurrent", config.sync.concurrent),
                    push_on_local_win=sync_data.get(
                        "push_on_local_win", config.sync.push_on_local_win
                    ),
                )

            # Parse peers
            if "peers" in data:
                config.peers = _parse_peers(data["peers"] or [])

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
