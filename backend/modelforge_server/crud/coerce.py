"""
Record payload validation for generated CRUD handlers.

Incoming payloads are checked against the active definition and coerced
field by field (see schema/values.py for the per-type rules) before they
reach the Table Store. Stored rows are decoded back using the current
definition.

Invariants:
    - Unknown payload fields are rejected, never silently dropped
    - System columns (id, created_at, updated_at) cannot be written
    - A required field is never null after create or update
"""

from __future__ import annotations

import math
from difflib import get_close_matches
from typing import Any, Mapping

from ..errors import UnknownFieldError, ValidationError
from ..schema.types import SYSTEM_COLUMNS, FieldType, ModelDefinition
from ..schema.values import coerce_value, is_number


def _reject_unknown(definition: ModelDefinition, payload: Mapping[str, Any]) -> None:
    known = definition.get_field_names()
    for key in payload:
        if key in SYSTEM_COLUMNS:
            raise ValidationError(
                f"Field '{key}' is managed by storage and cannot be written",
                field_name=key,
            )
        if definition.get_field(key) is None:
            suggestions = get_close_matches(key, known, n=3)
            raise UnknownFieldError(key, definition.name, suggestions)


def coerce_create_payload(
    definition: ModelDefinition,
    payload: Mapping[str, Any],
) -> dict[str, Any]:
    """Validate and coerce a Create payload.

    Missing fields take their default. Every field of the definition is
    present in the result, null where no value or default exists.

    Args:
        definition: Active model definition
        payload: Caller-supplied field values

    Returns:
        Coerced values keyed by field name, in field order

    Raises:
        UnknownFieldError: If the payload names an undefined field
        ValidationError: If required fields are missing or values do not coerce
    """
    _reject_unknown(definition, payload)

    errors: list[str] = []
    row: dict[str, Any] = {}
    for field in definition.fields:
        value = payload.get(field.name)
        if value is None:
            value = field.default
        if value is None:
            if field.required:
                errors.append(f"Field '{field.name}' is required")
            row[field.name] = None
            continue
        try:
            row[field.name] = coerce_value(field.name, field.type, value)
        except ValidationError as e:
            errors.append(e.message)

    if errors:
        raise ValidationError(
            f"Validation failed for {definition.name}: {'; '.join(errors)}",
            errors=errors,
        )
    return row


def coerce_update_payload(
    definition: ModelDefinition,
    patch: Mapping[str, Any],
) -> dict[str, Any]:
    """Validate and coerce an Update patch (only the supplied fields).

    Raises:
        UnknownFieldError: If the patch names an undefined field
        ValidationError: If a required field is nulled or a value does not coerce
    """
    _reject_unknown(definition, patch)

    errors: list[str] = []
    result: dict[str, Any] = {}
    for key, value in patch.items():
        field = definition.get_field(key)
        if value is None:
            if field.required:
                errors.append(f"Field '{key}' is required and cannot be null")
            else:
                result[key] = None
            continue
        try:
            result[key] = coerce_value(key, field.type, value)
        except ValidationError as e:
            errors.append(e.message)

    if errors:
        raise ValidationError(
            f"Validation failed for {definition.name}: {'; '.join(errors)}",
            errors=errors,
        )
    return result


def to_storage(definition: ModelDefinition, values: Mapping[str, Any]) -> dict[str, Any]:
    """Convert coerced values to their column representation."""
    stored: dict[str, Any] = {}
    for key, value in values.items():
        field = definition.get_field(key)
        if field is not None and field.type is FieldType.BOOLEAN and value is not None:
            stored[key] = 1 if value else 0
        else:
            stored[key] = value
    return stored


def _as_float(raw: Any) -> Any:
    if is_number(raw):
        return float(raw)
    if isinstance(raw, str):
        try:
            number = float(raw)
        except ValueError:
            return raw
        if math.isfinite(number):
            return number
    return raw


def _decode(field_type: FieldType, raw: Any) -> Any:
    # A kept TEXT column hands numbers and booleans back as text ("1.5", "1")
    if raw is None:
        return None
    if field_type is FieldType.NUMBER:
        return _as_float(raw)
    if field_type is FieldType.BOOLEAN:
        number = _as_float(raw)
        return number != 0 if is_number(number) else raw
    if field_type is FieldType.STRING and is_number(raw):
        return str(raw)
    # written under an earlier field type; returned as stored
    return raw


def from_storage(definition: ModelDefinition, row: Mapping[str, Any]) -> dict[str, Any]:
    """Decode a stored row using the current definition.

    Columns retained for fields no longer in the definition are omitted.
    """
    record: dict[str, Any] = {"id": row["id"]}
    for field in definition.fields:
        record[field.name] = _decode(field.type, row.get(field.name))
    record["created_at"] = row.get("created_at")
    record["updated_at"] = row.get("updated_at")
    return record
