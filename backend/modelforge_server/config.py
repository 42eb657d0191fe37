"""
Configuration management for the ModelForge server.

All configuration is done via environment variables. This module provides
typed configuration classes with validation. HTTP listener settings live
in api/settings.py.

Invariants:
    - All settings have sensible defaults for local development
    - Storage call timeouts are always positive

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep ServerConfig.log_config in step with new settings
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class TableStoreBackend(Enum):
    """Supported Table Store backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


@dataclass(frozen=True)
class StorageConfig:
    """Table Store configuration.

    Attributes:
        backend: Which Table Store backend to use
        data_dir: Directory for the SQLite database
        database_file: Database file name inside data_dir
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        operation_timeout_seconds: Upper bound on every Table Store call
    """

    backend: TableStoreBackend = TableStoreBackend.SQLITE
    data_dir: str = "./data"
    database_file: str = "modelforge.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    operation_timeout_seconds: float = 5.0

    @property
    def database_path(self) -> Path:
        return Path(self.data_dir) / self.database_file

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("TABLE_STORE_BACKEND", "sqlite").lower()
        try:
            backend = TableStoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid TABLE_STORE_BACKEND '{backend_str}'. Must be one of: sqlite, memory"
            ) from None

        return cls(
            backend=backend,
            data_dir=os.getenv("DATA_DIR", "./data"),
            database_file=os.getenv("DATABASE_FILE", "modelforge.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            operation_timeout_seconds=float(os.getenv("STORAGE_TIMEOUT_SECONDS", "5.0")),
        )


@dataclass(frozen=True)
class DefinitionsConfig:
    """Where published model definitions are persisted.

    Attributes:
        definitions_dir: Directory holding one <name>.json file per model
    """

    definitions_dir: str = "./models-config"

    @classmethod
    def from_env(cls) -> DefinitionsConfig:
        """Load configuration from environment variables."""
        return cls(definitions_dir=os.getenv("MODELS_CONFIG_DIR", "./models-config"))


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Table Store configuration
        definitions: Definition file configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    definitions: DefinitionsConfig = field(default_factory=DefinitionsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            definitions=DefinitionsConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.storage.operation_timeout_seconds <= 0:
            raise ValueError("STORAGE_TIMEOUT_SECONDS must be positive")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must not be negative")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")
        if not self.storage.database_file:
            raise ValueError("DATABASE_FILE must not be empty")

        if (
            self.storage.backend == TableStoreBackend.SQLITE
            and not os.path.exists(self.storage.data_dir)
        ):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "table_store_backend": self.storage.backend.value,
                "database_path": str(self.storage.database_path)
                if self.storage.backend == TableStoreBackend.SQLITE
                else None,
                "storage_timeout_seconds": self.storage.operation_timeout_seconds,
                "models_config_dir": self.definitions.definitions_dir,
                "log_level": self.observability.log_level,
            },
        )
