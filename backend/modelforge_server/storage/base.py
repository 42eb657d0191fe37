"""
Base protocol and types for the Table Store abstraction.

The Table Store executes column creation/alteration and row CRUD for the
tables that back active models. This module defines the TableStore
protocol every backend implements, the column/row types it exchanges,
and the time-bounded call wrapper the core uses for every storage call.

Invariants:
    - Every row has system columns id (TEXT primary key, UUID4),
      created_at and updated_at (Unix ms)
    - ensure_table is additive-only: it creates tables and adds columns,
      it never drops or rebuilds a column
    - A kept column never changes type; ensure_table rejects changes that
      would let the stored type alter values (see LOSSY_RETYPES)
    - Backends raise their native errors (or UniqueConstraintError for a
      duplicate unique value); bounded() translates native errors into
      StorageError / StorageTimeoutError at the core boundary

How to change safely:
    - Protocol changes require updating all implementations
    - Keep ensure_table additive; destructive alteration loses data
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    runtime_checkable,
)

from ..errors import ModelForgeError, StorageError, StorageTimeoutError, ValidationError
from ..schema.type_mapper import ColumnType
from ..schema.types import SYSTEM_COLUMNS

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

Row = Dict[str, Any]


class TableStoreError(Exception):
    """Base exception raised by Table Store backends."""
    pass


class TableNotFoundError(TableStoreError):
    """Operation addressed a table that ensure_table never created."""
    pass


@dataclass(frozen=True)
class Column:
    """A user column of a bound table.

    Attributes:
        name: Column name (same as the field name)
        type: Storage column type
        unique: Whether a unique index should back the column
    """
    name: str
    type: ColumnType
    unique: bool = False


# Numeric columns rewrite numeric-looking text on write ("007" -> 7)
LOSSY_RETYPES = frozenset({
    (ColumnType.REAL, ColumnType.TEXT),
    (ColumnType.INTEGER, ColumnType.TEXT),
})


def check_retypes(
    table: str,
    stored: Mapping[str, ColumnType],
    columns: Sequence[Column],
) -> None:
    """Reject requested columns whose kept storage type would alter values.

    Args:
        table: Table name
        stored: Existing user columns and their storage types
        columns: Requested columns

    Raises:
        ValidationError: If any column change is in LOSSY_RETYPES
    """
    errors = [
        f"Column '{table}.{c.name}' stores {stored[c.name].value} values and "
        f"cannot hold {c.type.value}; publish the field under a new name"
        for c in columns
        if (stored.get(c.name), c.type) in LOSSY_RETYPES
    ]
    if errors:
        raise ValidationError(
            f"Incompatible column type change for {table}: {'; '.join(errors)}",
            errors=errors,
        )


@dataclass(frozen=True)
class TableSync:
    """Outcome of ensure_table.

    Attributes:
        table: Table name
        created: Whether the table was created by this call
        added: Columns added by this call
        retained: Existing columns not in the requested set (kept, not dropped)
        retyped: Columns whose stored type differs from the requested type
        unique_skipped: Unique indexes that existing data prevented
    """
    table: str
    created: bool = False
    added: tuple[str, ...] = ()
    retained: tuple[str, ...] = ()
    retyped: tuple[str, ...] = ()
    unique_skipped: tuple[str, ...] = ()

    @property
    def has_drift(self) -> bool:
        return bool(self.retained or self.retyped or self.unique_skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "created": self.created,
            "added": list(self.added),
            "retained": list(self.retained),
            "retyped": list(self.retyped),
            "unique_skipped": list(self.unique_skipped),
        }


@runtime_checkable
class TableStore(Protocol):
    """Protocol for Table Store backends.

    Example:
        >>> store = InMemoryTableStore()
        >>> await store.connect()
        >>> await store.ensure_table("products", [Column("name", ColumnType.TEXT)])
        >>> row = await store.insert("products", {"name": "Pen"})
        >>> await store.select_by_id("products", row["id"])
    """

    async def connect(self) -> None:
        """Prepare the backend for use."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...

    async def describe_table(self, name: str) -> Optional[Dict[str, ColumnType]]:
        """User columns and their storage types, or None if the table is absent."""
        ...

    async def ensure_table(self, name: str, columns: Sequence[Column]) -> TableSync:
        """Create the table or add missing columns."""
        ...

    async def insert(self, name: str, row: Row) -> Row:
        """Insert a row; the store assigns id and timestamps."""
        ...

    async def select_all(self, name: str) -> List[Row]:
        """All rows of a table, oldest first."""
        ...

    async def select_by_id(self, name: str, row_id: str) -> Optional[Row]:
        """One row by primary key, or None."""
        ...

    async def update_by_id(self, name: str, row_id: str, patch: Row) -> Optional[Row]:
        """Merge patch into a row; None if the row does not exist."""
        ...

    async def delete_by_id(self, name: str, row_id: str) -> bool:
        """Delete a row; False if it did not exist."""
        ...


async def bounded(
    call: Awaitable[T],
    *,
    operation: str,
    table: Optional[str],
    timeout_seconds: float,
) -> T:
    """Await a Table Store call with a time bound.

    Args:
        call: The pending store coroutine
        operation: Operation name for errors and logs
        table: Table addressed by the call
        timeout_seconds: Upper bound on the call

    Returns:
        The call's result

    Raises:
        StorageTimeoutError: If the bound is exceeded
        StorageError: If the backend raised
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(
            "Storage call timed out",
            extra={"operation": operation, "table": table, "timeout_seconds": timeout_seconds},
        )
        raise StorageTimeoutError(operation, table, timeout_seconds) from None
    except ModelForgeError:
        raise
    except Exception as e:
        logger.error(
            f"Storage call failed: {e}",
            exc_info=True,
            extra={"operation": operation, "table": table},
        )
        raise StorageError(
            f"Storage operation '{operation}' on {table or '<none>'} failed: {e}",
            operation=operation,
            table=table,
        ) from e


def create_table_store(config: StorageConfig) -> TableStore:
    """Create a Table Store backend from configuration.

    Args:
        config: Storage configuration

    Returns:
        Configured TableStore (not yet connected)

    Raises:
        ValueError: If the backend is unknown
    """
    from ..config import TableStoreBackend

    if config.backend == TableStoreBackend.SQLITE:
        from .sqlite_store import SqliteTableStore

        return SqliteTableStore(
            db_path=config.database_path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    if config.backend == TableStoreBackend.MEMORY:
        from .memory import InMemoryTableStore

        return InMemoryTableStore()
    raise ValueError(f"Unknown table store backend: {config.backend}")
