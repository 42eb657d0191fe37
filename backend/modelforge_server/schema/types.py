"""
Core type definitions for ModelForge model definitions.

This module defines the declarative shape an operator publishes:
- FieldType: Closed enumeration of field types
- Action / Role: Closed enumerations used by permission matrices
- PermissionSet: Explicit actions plus a separate "all" flag
- FieldDefinition: One typed field of a model
- ModelDefinition: Name, ordered fields, permission matrix

Invariants:
    - Definitions are immutable once built; redefinition replaces the whole value
    - Field order is preserved exactly as published
    - "all" is never expanded into the explicit action set
    - Every Role has a PermissionSet in a validated definition

How to change safely:
    - Adding a Role means adding an enum member; every matrix then needs it
    - Adding a FieldType requires a column mapping in type_mapper.py and
      a coercion in values.py

Example:
    >>> Product = ModelDefinition(
    ...     name="Product",
    ...     fields=(FieldDefinition("name", FieldType.STRING, required=True),),
    ...     permissions={Role.ADMIN: PermissionSet(allow_all=True)},
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

# Columns every bound table carries; field names may not use them
SYSTEM_COLUMNS = ("id", "created_at", "updated_at")


class FieldType(Enum):
    """Supported field types in a model definition."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"

    @classmethod
    def from_str(cls, value: str) -> FieldType:
        """Convert string representation to FieldType.

        Raises:
            ValueError: If value is not a valid field type
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {valid}")


class Action(Enum):
    """Actions a permission matrix can grant.

    ALL is a superset marker, not a permission bit of its own.
    """

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ALL = "all"


class Role(Enum):
    """Closed set of roles carried by the Identity service's claim."""

    ADMIN = "Admin"
    MANAGER = "Manager"
    VIEWER = "Viewer"


@dataclass(frozen=True)
class PermissionSet:
    """Actions granted to one role on one model.

    Attributes:
        actions: Explicit actions (never contains Action.ALL)
        allow_all: Whether the role holds the "all" marker
    """

    actions: frozenset[Action] = frozenset()
    allow_all: bool = False

    def __post_init__(self) -> None:
        if Action.ALL in self.actions:
            raise ValueError("Action.ALL must be expressed with allow_all, not in actions")

    @classmethod
    def from_actions(cls, actions: Iterable[Action]) -> PermissionSet:
        """Split a flat action list into explicit actions and the all flag."""
        actions = list(actions)
        return cls(
            actions=frozenset(a for a in actions if a is not Action.ALL),
            allow_all=Action.ALL in actions,
        )

    def to_list(self) -> list[str]:
        """Serialize back to the persisted list form, "all" first."""
        result = [Action.ALL.value] if self.allow_all else []
        result.extend(
            a.value for a in Action if a is not Action.ALL and a in self.actions
        )
        return result


@dataclass(frozen=True)
class FieldDefinition:
    """Definition of a single field within a model.

    Attributes:
        name: Field name, unique within its model
        type: The field's data type
        required: Whether the field must be present on create
        default: Default value (already coerced to `type`)
        unique: Whether storage should enforce uniqueness (advisory)
    """

    name: str
    type: FieldType
    required: bool = False
    default: Any = None
    unique: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Field name cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted dictionary form."""
        result: dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
        }
        if self.default is not None:
            result["default"] = self.default
        if self.unique:
            result["unique"] = True
        return result


@dataclass(frozen=True)
class ModelDefinition:
    """Declarative description of one data shape.

    Attributes:
        name: Registry key (case-sensitive)
        fields: Ordered field definitions
        permissions: Role -> PermissionSet; absent roles are denied
        table_name: Explicit table name; derived from `name` when None

    Invariants:
        - Field names are unique
        - `permissions` is read-only after construction
    """

    name: str
    fields: tuple[FieldDefinition, ...]
    permissions: Mapping[Role, PermissionSet] = dataclass_field(default_factory=dict)
    table_name: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Model name cannot be empty")
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in model '{self.name}'")
        object.__setattr__(self, "permissions", MappingProxyType(dict(self.permissions)))

    @property
    def resolved_table_name(self) -> str:
        """Table backing this model: explicit name or lowercase plural."""
        return self.table_name or f"{self.name.lower()}s"

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted `{name, fields, rbac}` form."""
        result: dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "rbac": {
                role.value: self.permissions[role].to_list()
                for role in Role
                if role in self.permissions
            },
        }
        if self.table_name:
            result["tableName"] = self.table_name
        return result
