"""
ModelForge Server - Main entry point.

This module starts the ModelForge server with all components:
- Table Store (SQLite or in-memory)
- Schema Registry and CRUD dispatcher
- Publish Orchestrator and Boot Loader
- HTTP API (FastAPI served by uvicorn)

Usage:
    python -m backend.modelforge_server.main

Configuration is entirely via environment variables.
See config.py and api/settings.py for all available settings.

Invariants:
    - Persisted definitions are registered before requests are served
    - A bad definition file never prevents startup
    - All request handlers share one registry

How to change safely:
    - Construct new components in Server.__init__ and connect them in start()
    - Test the shutdown sequence with the SQLite backend
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import json_log_formatter
import uvicorn

from .api.http_app import create_app
from .api.settings import HttpSettings
from .config import ServerConfig, TableStoreBackend
from .crud.dispatcher import CrudDispatcher
from .publish.boot import BootLoader, BootReport
from .publish.orchestrator import PublishOrchestrator
from .schema.registry import SchemaRegistry
from .storage.base import TableStore, create_table_store
from .storage.file_store import DefinitionFileStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Server:
    """ModelForge server orchestrator.

    Owns the components shared by every request and manages their
    lifecycle. The HTTP app calls start() and stop() from its lifespan.

    Attributes:
        config: Server configuration
        table_store: Backend holding model tables
        file_store: Definition file persistence
        registry: Schema Registry
        dispatcher: Per-request CRUD dispatch
        orchestrator: Publish Orchestrator
        boot_report: Outcome of the last boot load

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        table_store: TableStore | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
            table_store: Optional Table Store (built from config if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False

        self.table_store = table_store or create_table_store(self.config.storage)
        self.file_store = DefinitionFileStore(self.config.definitions.definitions_dir)
        self.registry = SchemaRegistry(
            self.table_store,
            timeout_seconds=self.config.storage.operation_timeout_seconds,
        )
        self.dispatcher = CrudDispatcher(self.registry)
        self.orchestrator = PublishOrchestrator(self.registry, self.file_store)
        self.boot_report: BootReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect storage and load persisted definitions."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting ModelForge server")
        self.config.log_config()

        try:
            if self.config.storage.backend == TableStoreBackend.SQLITE:
                Path(self.config.storage.data_dir).mkdir(parents=True, exist_ok=True)

            await self.table_store.connect()
            logger.info("Table store connected")

            self.boot_report = await BootLoader(self.file_store, self.orchestrator).load()

            self._running = True
            logger.info("ModelForge server started successfully")

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.table_store.close()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping ModelForge server")
        await self.table_store.close()
        self._running = False
        logger.info("ModelForge server stopped")


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
        settings = HttpSettings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)
    app = create_app(server, settings)

    # uvicorn installs its own SIGINT/SIGTERM handlers and runs the lifespan
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
