"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``OFFLINEPAY_``, nested via ``__``)
2. YAML config file (``OFFLINEPAY_CONFIG_PATH`` env var or ``AppConfig.from_yaml``)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class MeshTransportKind(enum.StrEnum):
    """Peer channel implementation."""

    WEBSOCKET = "websocket"
    MEMORY = "memory"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3004


class DatabaseConfig(BaseSettings):
    """Local transaction store settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./offline_pay.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class MeshConfig(BaseSettings):
    """Peer overlay and gossip settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_MESH__",
        case_sensitive=False,
    )

    transport: MeshTransportKind = MeshTransportKind.WEBSOCKET
    peer_id: str = Field(
        default="",
        description="Local peer identity; for websocket meshes this is the advertised ws:// URL",
    )
    bootstrap_peers: list[str] = Field(default_factory=list)
    initial_ttl: int = 5
    discovery_interval: float = 30.0
    reconnect_delay: float = 5.0
    peer_list_connect_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    dedup_window: float = 3600.0
    dedup_max_entries: int = 50_000
    prune_interval: float = 60.0


class SyncConfig(BaseSettings):
    """Ledger reconciliation settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_SYNC__",
        case_sensitive=False,
    )

    enabled: bool = True
    start_online: bool = True
    interval: float = 30.0
    batch_size: int = Field(default=20, ge=1, le=20)
    relay_mesh_transactions: bool = False


class LedgerConfig(BaseSettings):
    """Authoritative ledger endpoint settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_LEDGER__",
        case_sensitive=False,
    )

    url: str = "http://localhost:8545"
    token: str = ""
    submit_path: str = "/v1/batches"
    timeout: float = 30.0


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


class LoggingConfig(BaseSettings):
    """Process-wide logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_LOGGING__",
        case_sensitive=False,
    )

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``OFFLINEPAY_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="OFFLINEPAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    mesh: MeshConfig = Field(default_factory=MeshConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
