"""
Publishing and boot-time loading of model definitions.
"""

from .boot import BootLoader, BootReport
from .orchestrator import PublishOrchestrator

__all__ = [
    "BootLoader",
    "BootReport",
    "PublishOrchestrator",
]
