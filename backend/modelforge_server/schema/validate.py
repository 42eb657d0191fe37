"""
Validation of published model definitions.

Turns the persisted JSON shape
    {name, tableName?, fields: [{name, type, required, default?, unique?}],
     rbac: {Role: [Action, ...]}}
into a ModelDefinition, collecting every problem before failing.

Invariants:
    - Names (model, table, field) are safe SQL identifiers
    - Field names are unique and never collide with system columns
    - Defaults are coerced to their field's type at publish time
    - Roles missing from `rbac` are filled with an empty PermissionSet;
      unknown roles and unknown actions are rejected

How to change safely:
    - Adding a rule here tightens publishing for existing definition files;
      boot will skip files that no longer validate
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from ..errors import ValidationError
from .types import (
    SYSTEM_COLUMNS,
    Action,
    FieldDefinition,
    FieldType,
    ModelDefinition,
    PermissionSet,
    Role,
)
from .values import coerce_value

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
MAX_IDENTIFIER_LENGTH = 63


def _check_identifier(value: Any, label: str, errors: list[str]) -> bool:
    if not isinstance(value, str) or not value:
        errors.append(f"{label} must be a non-empty string")
        return False
    if len(value) > MAX_IDENTIFIER_LENGTH:
        errors.append(f"{label} '{value}' is longer than {MAX_IDENTIFIER_LENGTH} characters")
        return False
    if not IDENTIFIER_RE.match(value):
        errors.append(
            f"{label} '{value}' must start with a letter or underscore and "
            "contain only letters, digits and underscores"
        )
        return False
    return True


def _parse_field(index: int, data: Any, seen: set[str], errors: list[str]) -> FieldDefinition | None:
    label = f"fields[{index}]"
    if not isinstance(data, Mapping):
        errors.append(f"{label} must be an object")
        return None

    name = data.get("name")
    if not _check_identifier(name, f"{label}.name", errors):
        return None
    if name in SYSTEM_COLUMNS:
        errors.append(f"{label}.name '{name}' is reserved for a system column")
        return None
    if name in seen:
        errors.append(f"Duplicate field name '{name}'")
        return None
    seen.add(name)

    type_value = data.get("type")
    try:
        field_type = FieldType.from_str(type_value)
    except ValueError as e:
        errors.append(f"{label} ({name}): {e}")
        return None

    flags = {}
    for flag in ("required", "unique"):
        flag_value = data.get(flag, False)
        if flag_value is None:
            flag_value = False
        if not isinstance(flag_value, bool):
            errors.append(f"{label} ({name}): '{flag}' must be a boolean")
            return None
        flags[flag] = flag_value

    default = data.get("default")
    if default is not None:
        try:
            default = coerce_value(name, field_type, default)
        except ValidationError as e:
            errors.append(f"{label} default: {e.message}")
            return None

    return FieldDefinition(
        name=name,
        type=field_type,
        required=flags["required"],
        default=default,
        unique=flags["unique"],
    )


def _parse_rbac(data: Any, errors: list[str]) -> dict[Role, PermissionSet]:
    if not isinstance(data, Mapping):
        errors.append("rbac must be an object mapping roles to action lists")
        return {}

    valid_roles = [r.value for r in Role]
    valid_actions = [a.value for a in Action]
    matrix: dict[Role, PermissionSet] = {}

    for role_value, actions in data.items():
        try:
            role = Role(role_value)
        except ValueError:
            errors.append(f"rbac: unknown role '{role_value}'. Valid roles: {valid_roles}")
            continue
        if not isinstance(actions, (list, tuple)):
            errors.append(f"rbac.{role_value} must be a list of actions")
            continue
        parsed: list[Action] = []
        for action_value in actions:
            try:
                parsed.append(Action(action_value))
            except ValueError:
                errors.append(
                    f"rbac.{role_value}: unknown action '{action_value}'. "
                    f"Valid actions: {valid_actions}"
                )
        matrix[role] = PermissionSet.from_actions(parsed)

    for role in Role:
        matrix.setdefault(role, PermissionSet())
    return matrix


def validate_definition(data: Mapping[str, Any]) -> ModelDefinition:
    """Validate a raw model definition.

    Args:
        data: Definition in its persisted JSON shape

    Returns:
        ModelDefinition with fields in published order and every Role present
        in the permission matrix

    Raises:
        ValidationError: With every problem found listed in `errors`

    Example:
        >>> definition = validate_definition({
        ...     "name": "Product",
        ...     "fields": [{"name": "name", "type": "string", "required": True}],
        ...     "rbac": {"Admin": ["all"], "Viewer": ["read"]},
        ... })
        >>> definition.permissions[Role.MANAGER].to_list()
        []
    """
    if not isinstance(data, Mapping):
        raise ValidationError(
            "Invalid model configuration: definition must be an object",
            errors=["definition must be an object"],
        )

    errors: list[str] = []

    name = data.get("name")
    name_ok = _check_identifier(name, "name", errors)

    table_name = data.get("tableName")
    if table_name is not None:
        _check_identifier(table_name, "tableName", errors)

    raw_fields = data.get("fields")
    fields: list[FieldDefinition] = []
    if not isinstance(raw_fields, (list, tuple)) or not raw_fields:
        errors.append("fields must be a non-empty list")
    else:
        seen: set[str] = set()
        for index, raw_field in enumerate(raw_fields):
            parsed = _parse_field(index, raw_field, seen, errors)
            if parsed is not None:
                fields.append(parsed)

    if "rbac" not in data:
        errors.append("rbac is required")
        permissions: dict[Role, PermissionSet] = {}
    else:
        permissions = _parse_rbac(data["rbac"], errors)

    if errors:
        label = name if name_ok else "<invalid>"
        raise ValidationError(
            f"Invalid model configuration for {label}: {'; '.join(errors)}",
            errors=errors,
        )

    return ModelDefinition(
        name=name,
        fields=tuple(fields),
        permissions=permissions,
        table_name=table_name,
    )
