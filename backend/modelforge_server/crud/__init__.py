"""
Generated record operations for active models.

This module provides:
- Payload validation and coercion (coerce.py)
- The per-model handler set built at registration (handlers.py)
- Per-request dispatch onto the active handler set (dispatcher.py)
"""

from .dispatcher import CrudDispatcher, Operation
from .handlers import HandlerSet, build_handlers

__all__ = [
    "CrudDispatcher",
    "Operation",
    "HandlerSet",
    "build_handlers",
]
