"""
SQLite Table Store for ModelForge.

One SQLite file holds every table that backs an active model. Each table
has the system columns plus one column per field of the model that owns it.

Invariants:
    - Identifiers are validated upstream and always double-quoted here
    - ensure_table never drops, renames or retypes a column, and rejects
      type changes the kept column would not store faithfully
    - Write operations run in a single IMMEDIATE transaction
    - Blocking sqlite3 calls run in a worker thread so callers can bound them

How to change safely:
    - Keep schema changes additive; existing rows must stay readable
    - Test alteration against a populated database before shipping

Table schema (per model):
    <table>:
        - id TEXT PRIMARY KEY (UUID4)
        - created_at INTEGER NOT NULL (Unix ms)
        - updated_at INTEGER NOT NULL (Unix ms)
        - <field> TEXT | REAL | INTEGER (one per field, nullable)
        - UNIQUE INDEX "ux:<table>:<field>" for unique fields
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, List, Optional, Sequence

from ..errors import UniqueConstraintError
from ..schema.type_mapper import ColumnType
from .base import SYSTEM_COLUMNS, Column, Row, TableNotFoundError, TableSync, check_retypes

logger = logging.getLogger(__name__)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _index_name(table: str, column: str) -> str:
    # ":" cannot appear in identifiers, so names never collide across tables
    return f"ux:{table}:{column}"


def _unique_violation(table: str, error: sqlite3.IntegrityError) -> UniqueConstraintError | None:
    # "UNIQUE constraint failed: products.sku"
    message = str(error)
    if not message.startswith("UNIQUE constraint failed"):
        return None
    target = message.partition(": ")[2].split(",")[0].strip()
    column = target.partition(".")[2] or None
    return UniqueConstraintError(table, column)


class SqliteTableStore:
    """SQLite-backed Table Store.

    A fresh connection is opened per operation, so the store holds no
    connection state between calls.

    Attributes:
        db_path: Path of the database file
        wal_mode: Whether to enable WAL journal mode
        busy_timeout_ms: How long to wait for a locked database

    Example:
        >>> store = SqliteTableStore("./data/modelforge.db")
        >>> await store.connect()
        >>> sync = await store.ensure_table("products", [Column("name", ColumnType.TEXT)])
    """

    def __init__(
        self,
        db_path: str | Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database file."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # explicit transactions
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    @staticmethod
    def _table_columns(conn: sqlite3.Connection, table: str) -> dict[str, str]:
        rows = conn.execute(f"PRAGMA table_info({_quote(table)})").fetchall()
        return {row["name"]: row["type"].upper() for row in rows}

    def _require_table(self, conn: sqlite3.Connection, table: str) -> dict[str, str]:
        columns = self._table_columns(conn, table)
        if not columns:
            raise TableNotFoundError(f"Table not found: {table}")
        return columns

    async def connect(self) -> None:
        """Create the database file and verify it opens."""

        def _connect() -> None:
            with self._get_connection() as conn:
                conn.execute("SELECT 1").fetchone()

        await asyncio.to_thread(_connect)
        logger.info("SQLite table store ready", extra={"db_path": str(self.db_path)})

    async def close(self) -> None:
        """Nothing to release; connections are per operation."""
        logger.debug("SQLite table store closed")

    # ── Schema ─────────────────────────────────────────────────────────

    def _sync_unique_indexes(
        self,
        conn: sqlite3.Connection,
        table: str,
        columns: Sequence[Column],
    ) -> list[str]:
        owned = {
            row["name"]
            for row in conn.execute(f"PRAGMA index_list({_quote(table)})").fetchall()
        }
        skipped: list[str] = []
        for column in columns:
            index_name = _index_name(table, column.name)
            if not column.unique:
                if index_name in owned:
                    conn.execute(f"DROP INDEX {_quote(index_name)}")
                continue
            try:
                conn.execute(
                    f"CREATE UNIQUE INDEX IF NOT EXISTS {_quote(index_name)} "
                    f"ON {_quote(table)} ({_quote(column.name)})"
                )
            except sqlite3.IntegrityError:
                skipped.append(column.name)
                logger.warning(
                    "Existing rows violate unique constraint; index not created",
                    extra={"table": table, "column": column.name},
                )
        return skipped

    @staticmethod
    def _user_column_types(existing: dict[str, str]) -> dict[str, ColumnType]:
        types: dict[str, ColumnType] = {}
        for name, declared in existing.items():
            if name in SYSTEM_COLUMNS:
                continue
            try:
                types[name] = ColumnType(declared)
            except ValueError:
                # column declared outside ModelForge; never compared
                continue
        return types

    def _describe_table(self, name: str) -> Optional[dict[str, ColumnType]]:
        with self._get_connection() as conn:
            existing = self._table_columns(conn, name)
        if not existing:
            return None
        return self._user_column_types(existing)

    async def describe_table(self, name: str) -> Optional[dict[str, ColumnType]]:
        """User columns and their declared types, or None if the table is absent."""
        return await asyncio.to_thread(self._describe_table, name)

    def _ensure_table(self, name: str, columns: Sequence[Column]) -> TableSync:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                existing = self._table_columns(conn, name)
                if not existing:
                    column_sql = "".join(
                        f",\n    {_quote(c.name)} {c.type.value}" for c in columns
                    )
                    conn.execute(
                        f"CREATE TABLE {_quote(name)} (\n"
                        "    id TEXT PRIMARY KEY,\n"
                        "    created_at INTEGER NOT NULL,\n"
                        f"    updated_at INTEGER NOT NULL{column_sql}\n"
                        ")"
                    )
                    skipped = self._sync_unique_indexes(conn, name, columns)
                    conn.execute("COMMIT")
                    return TableSync(
                        table=name,
                        created=True,
                        added=tuple(c.name for c in columns),
                        unique_skipped=tuple(skipped),
                    )

                check_retypes(name, self._user_column_types(existing), columns)

                added: list[str] = []
                retyped: list[str] = []
                for column in columns:
                    stored_type = existing.get(column.name)
                    if stored_type is None:
                        conn.execute(
                            f"ALTER TABLE {_quote(name)} "
                            f"ADD COLUMN {_quote(column.name)} {column.type.value}"
                        )
                        added.append(column.name)
                    elif stored_type != column.type.value:
                        retyped.append(column.name)

                requested = {c.name for c in columns}
                retained = tuple(
                    n for n in existing
                    if n not in requested and n not in SYSTEM_COLUMNS
                )
                skipped = self._sync_unique_indexes(conn, name, columns)
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return TableSync(
            table=name,
            added=tuple(added),
            retained=retained,
            retyped=tuple(retyped),
            unique_skipped=tuple(skipped),
        )

    async def ensure_table(self, name: str, columns: Sequence[Column]) -> TableSync:
        """Create the table, or add the columns it is missing.

        Args:
            name: Table name
            columns: Desired user columns

        Returns:
            TableSync describing what changed and what drifted
        """
        return await asyncio.to_thread(self._ensure_table, name, list(columns))

    # ── Rows ───────────────────────────────────────────────────────────

    def _insert(self, name: str, row: Row) -> Row:
        now = int(time.time() * 1000)
        row_id = str(uuid.uuid4())

        with self._get_connection() as conn:
            columns = self._require_table(conn, name)
            values: dict[str, Any] = {"id": row_id, "created_at": now, "updated_at": now}
            values.update({k: v for k, v in row.items() if k in columns})

            names = ", ".join(_quote(k) for k in values)
            placeholders = ", ".join("?" for _ in values)
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    f"INSERT INTO {_quote(name)} ({names}) VALUES ({placeholders})",
                    tuple(values.values()),
                )
                stored = conn.execute(
                    f"SELECT * FROM {_quote(name)} WHERE id = ?", (row_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                violation = _unique_violation(name, e)
                if violation is None:
                    raise
                raise violation from e
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return dict(stored)

    async def insert(self, name: str, row: Row) -> Row:
        """Insert a row; id and timestamps are assigned here."""
        return await asyncio.to_thread(self._insert, name, dict(row))

    def _select_all(self, name: str) -> List[Row]:
        with self._get_connection() as conn:
            self._require_table(conn, name)
            rows = conn.execute(
                f"SELECT * FROM {_quote(name)} ORDER BY created_at, rowid"
            ).fetchall()
        return [dict(r) for r in rows]

    async def select_all(self, name: str) -> List[Row]:
        return await asyncio.to_thread(self._select_all, name)

    def _select_by_id(self, name: str, row_id: str) -> Optional[Row]:
        with self._get_connection() as conn:
            self._require_table(conn, name)
            row = conn.execute(
                f"SELECT * FROM {_quote(name)} WHERE id = ?", (row_id,)
            ).fetchone()
        return dict(row) if row is not None else None

    async def select_by_id(self, name: str, row_id: str) -> Optional[Row]:
        return await asyncio.to_thread(self._select_by_id, name, row_id)

    def _update_by_id(self, name: str, row_id: str, patch: Row) -> Optional[Row]:
        with self._get_connection() as conn:
            columns = self._require_table(conn, name)
            values = {k: v for k, v in patch.items() if k in columns}
            values["updated_at"] = int(time.time() * 1000)
            assignments = ", ".join(f"{_quote(k)} = ?" for k in values)

            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    f"UPDATE {_quote(name)} SET {assignments} WHERE id = ?",
                    (*values.values(), row_id),
                )
                if cursor.rowcount == 0:
                    conn.execute("ROLLBACK")
                    return None
                stored = conn.execute(
                    f"SELECT * FROM {_quote(name)} WHERE id = ?", (row_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                violation = _unique_violation(name, e)
                if violation is None:
                    raise
                raise violation from e
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return dict(stored)

    async def update_by_id(self, name: str, row_id: str, patch: Row) -> Optional[Row]:
        """Merge patch into a row and bump updated_at."""
        return await asyncio.to_thread(self._update_by_id, name, row_id, dict(patch))

    def _delete_by_id(self, name: str, row_id: str) -> bool:
        with self._get_connection() as conn:
            self._require_table(conn, name)
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(f"DELETE FROM {_quote(name)} WHERE id = ?", (row_id,))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return cursor.rowcount > 0

    async def delete_by_id(self, name: str, row_id: str) -> bool:
        return await asyncio.to_thread(self._delete_by_id, name, row_id)
