"""
CLI tools for ModelForge administration.

This module provides command-line tools for:
- schema: Validate definition files and preview their storage binding

Invariants:
    - Tools work offline (no running server required)
"""

from .schema_cli import SchemaCLI

__all__ = ["SchemaCLI"]
