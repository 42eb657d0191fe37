"""
Field type to storage column type mapping.

Dates are stored as canonical ISO-8601 text and booleans as 0/1 integers,
which is how SQLite represents both natively.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from ..errors import UnknownFieldTypeError
from .types import FieldType, ModelDefinition


class ColumnType(Enum):
    """Storage column types understood by the Table Store."""

    TEXT = "TEXT"
    REAL = "REAL"
    INTEGER = "INTEGER"


_COLUMN_TYPES = {
    FieldType.STRING: ColumnType.TEXT,
    FieldType.NUMBER: ColumnType.REAL,
    FieldType.BOOLEAN: ColumnType.INTEGER,
    FieldType.DATE: ColumnType.TEXT,
}


def map_type(field_type: Union[FieldType, str]) -> ColumnType:
    """Map an abstract field type to its storage column type.

    Args:
        field_type: FieldType member or its string value

    Returns:
        The column type for the field

    Raises:
        UnknownFieldTypeError: If field_type is outside the enumeration
    """
    if isinstance(field_type, str):
        try:
            field_type = FieldType.from_str(field_type)
        except ValueError:
            raise UnknownFieldTypeError(field_type) from None
    column_type = _COLUMN_TYPES.get(field_type) if isinstance(field_type, FieldType) else None
    if column_type is None:
        raise UnknownFieldTypeError(field_type)
    return column_type


def column_types(definition: ModelDefinition) -> dict[str, ColumnType]:
    """Column type for every field of a definition, in field order."""
    return {f.name: map_type(f.type) for f in definition.fields}
