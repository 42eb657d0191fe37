"""
ModelForge Test Suite.

This package contains:
- unit/: Unit tests (in-memory Table Store, no files beyond temp dirs)
- integration/: Integration tests (SQLite, definition files, HTTP app)
"""
