"""
Boot Loader.

Re-registers every persisted definition at startup. Files are processed
in name order, but no definition depends on another, so the order has
no effect on the outcome.

Invariants:
    - A malformed, invalid or unregistrable file is logged and skipped
    - One bad file never prevents the others from loading
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import ModelForgeError
from ..storage.file_store import DefinitionFileStore
from .orchestrator import PublishOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class BootReport:
    """Outcome of a boot load.

    Attributes:
        loaded: Names of the models registered
        skipped: Path -> reason for every file that was not registered
    """

    loaded: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"loaded": list(self.loaded), "skipped": dict(self.skipped)}


class BootLoader:
    """Loads persisted definitions into the registry."""

    def __init__(self, file_store: DefinitionFileStore, orchestrator: PublishOrchestrator) -> None:
        self.file_store = file_store
        self.orchestrator = orchestrator

    def _skip(self, report: BootReport, path: Path, reason: str) -> None:
        logger.warning(
            f"Skipping definition file {path.name}: {reason}",
            extra={"path": str(path)},
        )
        report.skipped[str(path)] = reason

    async def load(self) -> BootReport:
        """Register every definition file found in the File Store.

        Returns:
            BootReport listing loaded models and skipped files
        """
        report = BootReport()

        for path in self.file_store.list_definition_files():
            try:
                data = self.file_store.read_definition(path)
            except (OSError, ValueError) as e:
                self._skip(report, path, f"unreadable: {e}")
                continue

            try:
                definition = self.orchestrator.registry.validate(data)
                await self.orchestrator.register_only(definition)
            except ModelForgeError as e:
                self._skip(report, path, e.message)
                continue

            if path.stem != definition.name:
                logger.warning(
                    "Definition file name does not match model name",
                    extra={"path": str(path), "model": definition.name},
                )
            report.loaded.append(definition.name)

        logger.info(
            f"Boot loaded {len(report.loaded)} model(s), skipped {len(report.skipped)}",
            extra={"loaded": report.loaded, "skipped": list(report.skipped)},
        )
        return report
