"""
In-memory Table Store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Same additive-only ensure_table semantics as the SQLite backend
    - Unique columns are enforced on insert and update, except where
      existing rows already hold duplicates (reported as unique_skipped)

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the TableStore protocol
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..errors import UniqueConstraintError
from ..schema.type_mapper import ColumnType
from .base import Column, Row, TableNotFoundError, TableSync, check_retypes

logger = logging.getLogger(__name__)


@dataclass
class InMemoryTable:
    """In-memory table storage."""
    columns: Dict[str, Column] = field(default_factory=dict)
    rows: Dict[str, Row] = field(default_factory=dict)


class InMemoryTableStore:
    """In-memory implementation of TableStore for testing.

    Thread safety:
        Uses an asyncio lock; safe to use from multiple coroutines
        on one event loop.

    Example:
        >>> store = InMemoryTableStore()
        >>> await store.connect()
        >>> await store.ensure_table("products", [Column("name", ColumnType.TEXT)])
        >>> await store.insert("products", {"name": "Pen"})
    """

    def __init__(self) -> None:
        self._tables: Dict[str, InMemoryTable] = {}
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def table_names(self) -> List[str]:
        return sorted(self._tables)

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryTableStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._tables.clear()
        logger.debug("InMemoryTableStore closed")

    def _table(self, name: str) -> InMemoryTable:
        table = self._tables.get(name)
        if table is None:
            raise TableNotFoundError(f"Table not found: {name}")
        return table

    def _check_unique(self, name: str, table: InMemoryTable, row: Row, row_id: str) -> None:
        for column in table.columns.values():
            if not column.unique:
                continue
            value = row.get(column.name)
            if value is None:
                continue
            for other_id, other in table.rows.items():
                if other_id != row_id and other.get(column.name) == value:
                    raise UniqueConstraintError(name, column.name)

    @staticmethod
    def _has_duplicates(table: InMemoryTable, column_name: str) -> bool:
        seen = set()
        for row in table.rows.values():
            value = row.get(column_name)
            if value is None:
                continue
            if value in seen:
                return True
            seen.add(value)
        return False

    async def describe_table(self, name: str) -> Optional[Dict[str, ColumnType]]:
        table = self._tables.get(name)
        if table is None:
            return None
        return {c.name: c.type for c in table.columns.values()}

    async def ensure_table(self, name: str, columns: Sequence[Column]) -> TableSync:
        async with self._lock:
            table = self._tables.get(name)
            if table is None:
                self._tables[name] = InMemoryTable(columns={c.name: c for c in columns})
                return TableSync(table=name, created=True, added=tuple(c.name for c in columns))

            check_retypes(name, {c.name: c.type for c in table.columns.values()}, columns)

            added: list[str] = []
            retyped: list[str] = []
            skipped: list[str] = []
            for column in columns:
                existing = table.columns.get(column.name)
                if existing is None:
                    added.append(column.name)
                    for row in table.rows.values():
                        row.setdefault(column.name, None)
                elif existing.type != column.type:
                    retyped.append(column.name)
                    # stored type stays as first declared
                    column = Column(column.name, existing.type, column.unique)
                if column.unique and self._has_duplicates(table, column.name):
                    skipped.append(column.name)
                    logger.warning(
                        "Existing rows violate unique constraint; not enforced",
                        extra={"table": name, "column": column.name},
                    )
                    column = Column(column.name, column.type, False)
                table.columns[column.name] = column

            requested = {c.name for c in columns}
            retained = tuple(n for n in table.columns if n not in requested)
            return TableSync(
                table=name,
                added=tuple(added),
                retained=retained,
                retyped=tuple(retyped),
                unique_skipped=tuple(skipped),
            )

    async def insert(self, name: str, row: Row) -> Row:
        async with self._lock:
            table = self._table(name)
            now = int(time.time() * 1000)
            row_id = str(uuid.uuid4())
            stored: Row = {"id": row_id}
            for column_name in table.columns:
                stored[column_name] = row.get(column_name)
            stored["created_at"] = now
            stored["updated_at"] = now
            self._check_unique(name, table, stored, row_id)
            table.rows[row_id] = stored
            return copy.deepcopy(stored)

    async def select_all(self, name: str) -> List[Row]:
        table = self._table(name)
        return [copy.deepcopy(r) for r in table.rows.values()]

    async def select_by_id(self, name: str, row_id: str) -> Optional[Row]:
        row = self._table(name).rows.get(row_id)
        return copy.deepcopy(row) if row is not None else None

    async def update_by_id(self, name: str, row_id: str, patch: Row) -> Optional[Row]:
        async with self._lock:
            table = self._table(name)
            existing = table.rows.get(row_id)
            if existing is None:
                return None
            updated = dict(existing)
            updated.update({k: v for k, v in patch.items() if k in table.columns})
            updated["updated_at"] = int(time.time() * 1000)
            self._check_unique(name, table, updated, row_id)
            table.rows[row_id] = updated
            return copy.deepcopy(updated)

    async def delete_by_id(self, name: str, row_id: str) -> bool:
        async with self._lock:
            return self._table(name).rows.pop(row_id, None) is not None
