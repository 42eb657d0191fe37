"""
Publish Orchestrator.

Publishing a model runs these steps in order:
    validate -> check table ownership and column types -> write definition
    file -> register in the Schema Registry

Invariants:
    - Nothing is written for a definition that fails validation
    - Nothing is registered unless the write succeeded
    - A successful write followed by a failed registration is reported as
      PartialPublishError, never as a generic failure

How to change safely:
    - Keep the write before the register so a restart can recover the
      latest published definition from disk
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..errors import PartialPublishError
from ..schema.registry import RegistryEntry, SchemaRegistry
from ..schema.types import ModelDefinition
from ..storage.file_store import DefinitionFileStore

logger = logging.getLogger(__name__)


class PublishOrchestrator:
    """Coordinates definition persistence and registration.

    Attributes:
        registry: Schema Registry to register into
        file_store: Where definition files are written
    """

    def __init__(self, registry: SchemaRegistry, file_store: DefinitionFileStore) -> None:
        self.registry = registry
        self.file_store = file_store

    async def publish(self, data: Mapping[str, Any]) -> RegistryEntry:
        """Validate, persist and register a raw definition.

        Args:
            data: Definition in its JSON shape

        Returns:
            The new active RegistryEntry

        Raises:
            ValidationError: If the definition is invalid (nothing written)
            TableConflictError: If another model holds the table (nothing written)
            ValidationError: If the existing table cannot store a changed field
                type (nothing written)
            StorageError: If the definition file could not be written
            PartialPublishError: If the file was written but registration failed
        """
        definition = self.registry.validate(data)
        self.registry.check_table_available(definition)
        await self.registry.check_columns_compatible(definition)

        # Persist the normalized form so boot sees exactly what was validated
        path = await self.file_store.write_definition(definition.name, definition.to_dict())

        try:
            entry = await self.registry.register(definition)
        except Exception as e:
            logger.error(
                f"Definition persisted but registration failed: {e}",
                exc_info=True,
                extra={"model": definition.name, "path": str(path)},
            )
            raise PartialPublishError(definition.name, str(path), e) from e

        logger.info("Model published", extra={"model": definition.name, "path": str(path)})
        return entry

    async def register_only(self, definition: ModelDefinition) -> RegistryEntry:
        """Register a definition whose file already exists (boot path)."""
        return await self.registry.register(definition)
