"""
Generated CRUD handlers for one active model.

build_handlers() turns a registry entry's definition and storage binding
into the five record operations. A handler set is built once per
registration and never mutated; redefinition builds a new one.

Invariants:
    - Permission is checked before any storage access
    - Every Table Store call is time-bounded
    - Missing records surface as NotFoundError; nothing is retried

How to change safely:
    - Handlers must only read the definition and binding they were built
      with, never the registry, so in-flight requests stay consistent
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from ..errors import NotFoundError
from ..schema.permissions import check_permission_or_raise
from ..schema.types import Action, ModelDefinition, Role
from ..storage.base import TableStore, bounded
from .coerce import coerce_create_payload, coerce_update_payload, from_storage, to_storage

if TYPE_CHECKING:
    from ..schema.registry import StorageBinding

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True)
class HandlerSet:
    """The five record operations of one model.

    Attributes:
        definition: Definition the handlers were generated from
        binding: Table name and column mapping
        table_store: Backend holding the rows
        timeout_seconds: Bound on each storage call
    """

    definition: ModelDefinition
    binding: StorageBinding
    table_store: TableStore
    timeout_seconds: float

    @property
    def model_name(self) -> str:
        return self.definition.name

    @property
    def table(self) -> str:
        return self.binding.table_name

    def _authorize(self, role: Role | str, action: Action) -> None:
        check_permission_or_raise(
            self.definition.permissions, role, action, self.definition.name
        )

    def _not_found(self, record_id: str) -> NotFoundError:
        return NotFoundError(
            f"{self.definition.name} with id '{record_id}' not found",
            resource_type=self.definition.name,
            resource_id=record_id,
        )

    async def create(self, role: Role | str, payload: Mapping[str, Any]) -> Record:
        """Validate, coerce and insert a new record."""
        self._authorize(role, Action.CREATE)
        values = coerce_create_payload(self.definition, payload)
        row = await bounded(
            self.table_store.insert(self.table, to_storage(self.definition, values)),
            operation="insert",
            table=self.table,
            timeout_seconds=self.timeout_seconds,
        )
        logger.debug("Record created", extra={"model": self.model_name, "id": row["id"]})
        return from_storage(self.definition, row)

    async def list_all(self, role: Role | str) -> list[Record]:
        """Every record of the model, oldest first. No pagination."""
        self._authorize(role, Action.READ)
        rows = await bounded(
            self.table_store.select_all(self.table),
            operation="select_all",
            table=self.table,
            timeout_seconds=self.timeout_seconds,
        )
        return [from_storage(self.definition, row) for row in rows]

    async def get_by_id(self, role: Role | str, record_id: str) -> Record:
        self._authorize(role, Action.READ)
        row = await bounded(
            self.table_store.select_by_id(self.table, record_id),
            operation="select_by_id",
            table=self.table,
            timeout_seconds=self.timeout_seconds,
        )
        if row is None:
            raise self._not_found(record_id)
        return from_storage(self.definition, row)

    async def update(
        self,
        role: Role | str,
        record_id: str,
        patch: Mapping[str, Any],
    ) -> Record:
        """Apply a partial patch; only supplied fields change."""
        self._authorize(role, Action.UPDATE)
        values = coerce_update_payload(self.definition, patch)
        row = await bounded(
            self.table_store.update_by_id(
                self.table, record_id, to_storage(self.definition, values)
            ),
            operation="update_by_id",
            table=self.table,
            timeout_seconds=self.timeout_seconds,
        )
        if row is None:
            raise self._not_found(record_id)
        return from_storage(self.definition, row)

    async def delete(self, role: Role | str, record_id: str) -> None:
        self._authorize(role, Action.DELETE)
        deleted = await bounded(
            self.table_store.delete_by_id(self.table, record_id),
            operation="delete_by_id",
            table=self.table,
            timeout_seconds=self.timeout_seconds,
        )
        if not deleted:
            raise self._not_found(record_id)
        logger.debug("Record deleted", extra={"model": self.model_name, "id": record_id})


def build_handlers(
    definition: ModelDefinition,
    binding: StorageBinding,
    table_store: TableStore,
    timeout_seconds: float,
) -> HandlerSet:
    """Generate the handler set for a bound definition.

    Args:
        definition: Validated model definition
        binding: Storage binding produced during registration
        table_store: Backend holding the rows
        timeout_seconds: Bound on each storage call

    Returns:
        HandlerSet bound to exactly this definition and binding
    """
    return HandlerSet(
        definition=definition,
        binding=binding,
        table_store=table_store,
        timeout_seconds=timeout_seconds,
    )
