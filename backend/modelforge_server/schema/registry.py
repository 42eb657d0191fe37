"""
Schema Registry for ModelForge.

The SchemaRegistry is the authoritative map of model name to active
registry entry. It provides:
- Validation of raw definitions
- Registration: bind storage, build handlers, swap the entry
- Lookup by name and discovery of every active definition

Invariants:
    - Registrations of one name are serialized; different names proceed
      independently
    - An entry is replaced as a whole; a reader sees the old entry or the
      new one, never a mix
    - A failed registration leaves the previous entry (if any) active
    - A table is bound to at most one model name at a time
    - There is no unregister operation

How to change safely:
    - Never mutate a RegistryEntry in place; build a new one and swap
    - Keep lookup() lock-free; it runs on every request
    - Storage binding must stay additive-only (see storage/base.py)

Example:
    >>> registry = SchemaRegistry(InMemoryTableStore(), timeout_seconds=5.0)
    >>> definition = registry.validate({"name": "Product", "fields": [...], "rbac": {...}})
    >>> entry = await registry.register(definition)
    >>> registry.lookup("Product").handlers.model_name
    'Product'
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..crud.handlers import HandlerSet, build_handlers
from ..errors import TableConflictError
from ..storage.base import Column, TableStore, TableSync, bounded, check_retypes
from .type_mapper import ColumnType, column_types
from .types import ModelDefinition
from .validate import validate_definition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageBinding:
    """Where a model's records live.

    Attributes:
        table_name: Backing table
        columns: Field name -> column type, in field order
    """

    table_name: str
    columns: Mapping[str, ColumnType]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table_name,
            "columns": {name: t.value for name, t in self.columns.items()},
        }


@dataclass(frozen=True)
class RegistryEntry:
    """An active definition with its storage binding and handler set."""

    definition: ModelDefinition
    binding: StorageBinding
    handlers: HandlerSet

    @property
    def name(self) -> str:
        return self.definition.name


def bind_storage(definition: ModelDefinition) -> StorageBinding:
    """Derive the storage binding a definition would produce."""
    return StorageBinding(
        table_name=definition.resolved_table_name,
        columns=column_types(definition),
    )


def _columns(definition: ModelDefinition, binding: StorageBinding) -> List[Column]:
    return [Column(f.name, binding.columns[f.name], f.unique) for f in definition.fields]


class SchemaRegistry:
    """Registry of active model definitions.

    Thread-safety:
        - register() holds a per-name asyncio lock for the whole
          bind-build-swap sequence
        - The lock table and table claims are guarded by a threading lock
        - lookup() and list() read an immutable snapshot and never block

    Attributes:
        table_store: Backend that owns the bound tables
        timeout_seconds: Bound on each storage call
    """

    def __init__(self, table_store: TableStore, timeout_seconds: float = 5.0) -> None:
        self.table_store = table_store
        self.timeout_seconds = timeout_seconds
        self._entries: Dict[str, RegistryEntry] = {}
        self._table_owners: Dict[str, str] = {}
        self._name_locks: Dict[str, asyncio.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def _name_lock(self, name: str) -> asyncio.Lock:
        with self._lock:
            lock = self._name_locks.get(name)
            if lock is None:
                lock = asyncio.Lock()
                self._name_locks[name] = lock
            return lock

    def _claim_table(self, name: str, table: str) -> bool:
        """Reserve a table for a model name.

        Returns:
            True if this call created the claim

        Raises:
            TableConflictError: If another model name holds the table
        """
        with self._lock:
            owner = self._table_owners.get(table)
            if owner is not None and owner != name:
                raise TableConflictError(name, table, owner)
            self._table_owners[table] = name
            return owner is None

    def _release_table(self, name: str, table: str) -> None:
        with self._lock:
            if self._table_owners.get(table) == name:
                del self._table_owners[table]

    def validate(self, data: Mapping[str, Any]) -> ModelDefinition:
        """Validate a raw definition.

        Raises:
            ValidationError: With every problem found
        """
        return validate_definition(data)

    def check_table_available(self, definition: ModelDefinition) -> None:
        """Fail early if the definition's table belongs to another model.

        register() repeats the check atomically; this only lets callers
        reject a conflict before doing other work.

        Raises:
            TableConflictError: If another model name holds the table
        """
        table = definition.resolved_table_name
        with self._lock:
            owner = self._table_owners.get(table)
        if owner is not None and owner != definition.name:
            raise TableConflictError(definition.name, table, owner)

    async def check_columns_compatible(self, definition: ModelDefinition) -> None:
        """Fail early if the existing table cannot store the definition's types.

        ensure_table repeats the check inside register(); this only lets
        callers reject the change before doing other work.

        Raises:
            ValidationError: If a kept column would alter values of its new type
            StorageError: If the Table Store failed or timed out
        """
        binding = bind_storage(definition)
        stored = await bounded(
            self.table_store.describe_table(binding.table_name),
            operation="describe_table",
            table=binding.table_name,
            timeout_seconds=self.timeout_seconds,
        )
        if stored:
            check_retypes(binding.table_name, stored, _columns(definition, binding))

    async def register(self, definition: ModelDefinition) -> RegistryEntry:
        """Bind storage for a definition and make it the active entry.

        Args:
            definition: Validated definition

        Returns:
            The new active RegistryEntry

        Raises:
            TableConflictError: If the table belongs to another model
            ValidationError: If a kept column would alter values of its new type
            StorageError: If binding storage failed or timed out
        """
        async with self._name_lock(definition.name):
            previous = self._entries.get(definition.name)
            binding = bind_storage(definition)
            claimed = self._claim_table(definition.name, binding.table_name)

            try:
                sync = await bounded(
                    self.table_store.ensure_table(
                        binding.table_name, _columns(definition, binding)
                    ),
                    operation="ensure_table",
                    table=binding.table_name,
                    timeout_seconds=self.timeout_seconds,
                )
            except Exception:
                if claimed:
                    self._release_table(definition.name, binding.table_name)
                raise

            self._log_sync(definition, sync)

            entry = RegistryEntry(
                definition=definition,
                binding=binding,
                handlers=build_handlers(
                    definition, binding, self.table_store, self.timeout_seconds
                ),
            )

            # Copy-on-write swap: readers holding the old dict are unaffected
            entries = dict(self._entries)
            entries[definition.name] = entry
            self._entries = entries

            if previous is not None and previous.binding.table_name != binding.table_name:
                self._release_table(definition.name, previous.binding.table_name)

        logger.info(
            "Model redefined" if previous is not None else "Model registered",
            extra={
                "model": definition.name,
                "table": binding.table_name,
                "field_count": len(definition.fields),
            },
        )
        return entry

    def _log_sync(self, definition: ModelDefinition, sync: TableSync) -> None:
        if sync.created:
            logger.info(
                "Table created",
                extra={"model": definition.name, "table": sync.table},
            )
        elif sync.added:
            logger.info(
                "Columns added",
                extra={"model": definition.name, "table": sync.table, "columns": list(sync.added)},
            )
        if sync.retained:
            logger.warning(
                "Columns of removed fields kept (additive-only alteration)",
                extra={"model": definition.name, "table": sync.table, "columns": list(sync.retained)},
            )
        if sync.retyped:
            logger.warning(
                "Field types changed; stored column types kept as first declared",
                extra={"model": definition.name, "table": sync.table, "columns": list(sync.retyped)},
            )
        if sync.unique_skipped:
            logger.warning(
                "Unique index not applied; existing rows hold duplicates",
                extra={
                    "model": definition.name,
                    "table": sync.table,
                    "columns": list(sync.unique_skipped),
                },
            )

    def lookup(self, name: str) -> Optional[RegistryEntry]:
        """Active entry for a model name, or None."""
        return self._entries.get(name)

    def list(self) -> List[ModelDefinition]:
        """Every active definition."""
        return [entry.definition for entry in self._entries.values()]
