"""
HTTP request layer for ModelForge.

This module provides the FastAPI application that exposes publishing,
discovery and the per-model record operations.
"""

from .http_app import create_app
from .settings import HttpSettings

__all__ = ["create_app", "HttpSettings"]
