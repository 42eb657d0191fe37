"""
Definition file persistence.

Each published model is stored as <config_dir>/<name>.json so the active
set can be re-registered at boot.

Invariants:
    - A definition file is replaced atomically; readers never see a
      half-written file
    - Files are UTF-8 JSON with two-space indentation
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping

from ..errors import StorageError

logger = logging.getLogger(__name__)


class DefinitionFileStore:
    """Reads and writes model definition files in one directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def _write(self, name: str, data: Mapping[str, Any]) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.path_for(name)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{name}.", suffix=".tmp", dir=str(self.directory)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    async def write_definition(self, name: str, data: Mapping[str, Any]) -> Path:
        """Persist a definition, replacing any previous file for the name.

        Raises:
            StorageError: If the file cannot be written
        """
        try:
            path = await asyncio.to_thread(self._write, name, dict(data))
        except OSError as e:
            logger.error(
                f"Failed to write definition file: {e}",
                extra={"model": name, "directory": str(self.directory)},
            )
            raise StorageError(
                f"Could not write definition for {name}: {e}",
                operation="write_definition",
            ) from e
        logger.info("Definition file written", extra={"model": name, "path": str(path)})
        return path

    def list_definition_files(self) -> list[Path]:
        """Definition files in name order; empty if the directory is absent."""
        if not self.directory.is_dir():
            return []
        return sorted(p for p in self.directory.glob("*.json") if p.is_file())

    def read_definition(self, path: Path) -> dict[str, Any]:
        """Load one definition file.

        Raises:
            OSError: If the file cannot be read
            ValueError: If it is not a JSON object
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} does not contain a JSON object")
        return data
