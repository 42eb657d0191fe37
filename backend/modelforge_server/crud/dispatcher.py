"""
Request dispatch onto generated handlers.

The dispatcher resolves the registry entry on every call and invokes
the entry's handler for the requested operation. It never caches an
entry, so the next request after a redefinition uses the new handlers.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..errors import NotFoundError, ValidationError
from ..identity import Identity
from ..schema.types import Action

if TYPE_CHECKING:
    from ..schema.registry import SchemaRegistry


class Operation(Enum):
    """Record operations exposed for every active model."""

    CREATE = "create"
    LIST_ALL = "list_all"
    GET_BY_ID = "get_by_id"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def action(self) -> Action:
        return _OPERATION_ACTIONS[self]


_OPERATION_ACTIONS = {
    Operation.CREATE: Action.CREATE,
    Operation.LIST_ALL: Action.READ,
    Operation.GET_BY_ID: Action.READ,
    Operation.UPDATE: Action.UPDATE,
    Operation.DELETE: Action.DELETE,
}


class CrudDispatcher:
    """Routes (model, operation, identity, payload) to the active handlers."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    async def dispatch(
        self,
        model_name: str,
        operation: Operation,
        identity: Identity,
        payload: Optional[Mapping[str, Any]] = None,
        record_id: Optional[str] = None,
    ) -> Any:
        """Run one record operation.

        Raises:
            NotFoundError: If no active model has the name, or the record is absent
            PermissionDeniedError: If the caller's role lacks the action
            ValidationError: If the payload is missing or invalid
            StorageError: If the Table Store failed or timed out
        """
        entry = self.registry.lookup(model_name)
        if entry is None:
            raise NotFoundError(
                f"Model '{model_name}' not found",
                resource_type="model",
                resource_id=model_name,
            )
        handlers = entry.handlers
        role = identity.role

        if operation is Operation.LIST_ALL:
            return await handlers.list_all(role)
        if operation is Operation.CREATE:
            return await handlers.create(role, _require_payload(payload))

        if record_id is None:
            raise ValidationError(f"{operation.value} requires a record id", field_name="id")
        if operation is Operation.GET_BY_ID:
            return await handlers.get_by_id(role, record_id)
        if operation is Operation.UPDATE:
            return await handlers.update(role, record_id, _require_payload(payload))
        return await handlers.delete(role, record_id)


def _require_payload(payload: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")
    return payload
