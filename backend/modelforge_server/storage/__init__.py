"""
Storage layer for ModelForge.

This module provides:
- The TableStore protocol with SQLite and in-memory backends
- The time-bounded call wrapper used for every Table Store call
- Definition file persistence for published models

Invariants:
    - Table alteration is additive-only
    - Every core-to-store call is bounded by bounded()

How to change safely:
    - New backends must implement the TableStore protocol
    - Run the integration tests against a populated database
"""

from .base import (
    SYSTEM_COLUMNS,
    Column,
    Row,
    TableNotFoundError,
    TableStore,
    TableStoreError,
    TableSync,
    bounded,
    create_table_store,
)
from .file_store import DefinitionFileStore
from .memory import InMemoryTableStore
from .sqlite_store import SqliteTableStore

__all__ = [
    # Protocol and types
    "TableStore",
    "Column",
    "Row",
    "TableSync",
    "SYSTEM_COLUMNS",
    "TableStoreError",
    "TableNotFoundError",
    # Helpers
    "bounded",
    "create_table_store",
    # Implementations
    "InMemoryTableStore",
    "SqliteTableStore",
    "DefinitionFileStore",
]
