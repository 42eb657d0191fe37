"""
Schema module for ModelForge.

This module provides the declarative model layer:
- Type definitions (ModelDefinition, FieldDefinition, PermissionSet)
- Definition validation
- The field type to column type mapping
- Permission evaluation

The SchemaRegistry lives in schema.registry and is imported from there;
it depends on the storage and crud packages, which depend on this one.

Invariants:
    - Field types, roles and actions are closed enumerations
    - A validated definition has a permission entry for every Role

How to change safely:
    - Tighten validation only with a plan for already-published files
    - Use the schema CLI to check definition files before deploying
"""

from .permissions import check_permission_or_raise, is_allowed
from .type_mapper import ColumnType, column_types, map_type
from .types import (
    Action,
    FieldDefinition,
    FieldType,
    ModelDefinition,
    PermissionSet,
    Role,
)
from .validate import validate_definition

__all__ = [
    # Types
    "Action",
    "FieldDefinition",
    "FieldType",
    "ModelDefinition",
    "PermissionSet",
    "Role",
    # Type mapping
    "ColumnType",
    "map_type",
    "column_types",
    # Permissions
    "is_allowed",
    "check_permission_or_raise",
    # Validation
    "validate_definition",
]
