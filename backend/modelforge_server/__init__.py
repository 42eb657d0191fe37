"""
ModelForge Server - runtime-defined models with permission-checked CRUD.

An operator publishes a model definition (a name, typed fields and a
per-role permission matrix) and the server immediately exposes create,
list, get, update and delete operations for it, backed by a table in
the Table Store. No restart is needed, including for redefinition.

Architecture:
    ┌─────────────┐   publish   ┌──────────────────┐
    │  Operator   │────────────▶│     Publish      │──────▶ models-config/<name>.json
    └─────────────┘             │   Orchestrator   │
                                └────────┬─────────┘
    ┌─────────────┐   boot              │ register
    │ Boot Loader │─────────────────────┤
    └─────────────┘                     ▼
                                ┌──────────────────┐  ensure_table  ┌─────────────┐
                                │ Schema Registry  │───────────────▶│ Table Store │
                                └────────┬─────────┘                │  (SQLite)   │
                                         │ lookup per request       └──────▲──────┘
    ┌─────────────┐             ┌────────▼─────────┐  permission    │
    │   Client    │────────────▶│ CRUD Dispatcher  │──────────────────────┘
    │ (role claim)│             │  + HandlerSet    │  then storage
    └─────────────┘             └──────────────────┘

Invariants:
    - Redefinition swaps a registry entry as a whole
    - Permission is checked before storage is touched
    - Table alteration is additive-only
    - Every storage call is time-bounded

How to change safely:
    - Keep field types, roles and actions closed enumerations
    - Never add a destructive storage path without a migration plan

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
