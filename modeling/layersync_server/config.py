"""
Configuration management for LayerSync Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set an explicit DATA_DIR
    - Configuration objects are immutable once loaded

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .schema.types import RelationshipType

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Local SQLite storage configuration.

    Attributes:
        data_dir: Directory for the SQLite database
        db_name: Database file name
        wal_mode: Enable SQLite WAL mode
        busy_timeout_ms: SQLite busy timeout
        cache_size_pages: SQLite cache size (negative = KB)
    """

    data_dir: str = "/var/lib/layersync"
    db_name: str = "layersync.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -64000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "/var/lib/layersync"),
            db_name=os.getenv("DB_NAME", "layersync.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-64000")),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Synchronization behaviour.

    Attributes:
        default_relationship_type: Cardinality used when a relationship
            input does not name one
        heuristic_foreign_keys: Infer foreign keys from column names
            during metadata ingestion
        name_fallback_matching: Allow matching projections by object name
            when neither an object id nor an origin link matches
    """

    default_relationship_type: RelationshipType = RelationshipType.ONE_TO_MANY
    heuristic_foreign_keys: bool = True
    name_fallback_matching: bool = True

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from environment variables."""
        type_str = os.getenv("DEFAULT_RELATIONSHIP_TYPE", "1:N")
        try:
            default_type = RelationshipType(type_str)
        except ValueError:
            raise ValueError(
                f"Invalid DEFAULT_RELATIONSHIP_TYPE '{type_str}'. "
                f"Must be one of: {', '.join(t.value for t in RelationshipType)}"
            )
        return cls(
            default_relationship_type=default_type,
            heuristic_foreign_keys=_env_bool("HEURISTIC_FOREIGN_KEYS", "true"),
            name_fallback_matching=_env_bool("NAME_FALLBACK_MATCHING", "true"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        storage: Local storage configuration
        sync: Synchronization configuration
        http: HTTP server configuration
        observability: Observability configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            sync=SyncConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )
        if not 0 < self.http.port < 65536:
            raise ValueError(f"Invalid HTTP_PORT {self.http.port}")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must not be negative")

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "db_name": self.storage.db_name,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "default_relationship_type": self.sync.default_relationship_type.value,
                "heuristic_foreign_keys": self.sync.heuristic_foreign_keys,
                "name_fallback_matching": self.sync.name_fallback_matching,
                "log_level": self.observability.log_level,
            },
        )
