"""
Value coercion for the closed field-type enumeration.

Rules:
    - string: str only
    - number: int/float (not bool) or a numeric string; must be finite
    - boolean: bool; numbers by non-zero; true/1/yes/on, false/0/no/off/""
    - date: ISO-8601 string, date/datetime, or Unix milliseconds;
      canonical form is an ISO-8601 UTC string
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Any

from ..errors import ValidationError
from .types import FieldType

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_date(name: str, value: Any) -> str:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time(), tzinfo=timezone.utc)
    elif is_number(value):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValidationError(
                f"Field '{name}' timestamp {value} is out of range", field_name=name
            ) from None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(
                f"Field '{name}' must be an ISO-8601 date, got '{value}'", field_name=name
            ) from None
    else:
        raise ValidationError(
            f"Field '{name}' must be a date, got {type(value).__name__}", field_name=name
        )

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat(timespec="microseconds")


def coerce_value(name: str, field_type: FieldType, value: Any) -> Any:
    """Coerce a single non-null value to a field type.

    Args:
        name: Field name (for error messages)
        field_type: Target type
        value: Incoming value

    Returns:
        The value in its canonical Python form

    Raises:
        ValidationError: If the value cannot be represented as field_type

    Example:
        >>> coerce_value("price", FieldType.NUMBER, "1.5")
        1.5
        >>> coerce_value("inStock", FieldType.BOOLEAN, "no")
        False
    """
    if field_type is FieldType.STRING:
        if not isinstance(value, str):
            raise ValidationError(
                f"Field '{name}' must be a string, got {type(value).__name__}",
                field_name=name,
            )
        return value

    if field_type is FieldType.NUMBER:
        if is_number(value):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                raise ValidationError(
                    f"Field '{name}' must be a number, got '{value}'", field_name=name
                ) from None
        else:
            raise ValidationError(
                f"Field '{name}' must be a number, got {type(value).__name__}",
                field_name=name,
            )
        if not math.isfinite(number):
            raise ValidationError(f"Field '{name}' must be a finite number", field_name=name)
        return number

    if field_type is FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if is_number(value):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValidationError(
            f"Field '{name}' must be a boolean, got {value!r}", field_name=name
        )

    if field_type is FieldType.DATE:
        return _coerce_date(name, value)

    raise ValidationError(f"Field '{name}' has unsupported type {field_type!r}", field_name=name)

