"""
Integration tests for publishing and boot loading.

Tests cover:
- Publish writes the definition and activates it
- Failures before the write leave no file
- Registration failure after the write is a PartialPublishError
- Boot re-registers persisted definitions and skips bad files
"""

import json
import os

import pytest

from backend.modelforge_server.errors import (
    PartialPublishError,
    TableConflictError,
    ValidationError,
)
from backend.modelforge_server.publish.boot import BootLoader
from backend.modelforge_server.publish.orchestrator import PublishOrchestrator
from backend.modelforge_server.schema.registry import SchemaRegistry
from backend.modelforge_server.storage.file_store import DefinitionFileStore
from backend.modelforge_server.storage.memory import InMemoryTableStore


class FailingEnsureStore(InMemoryTableStore):
    async def ensure_table(self, name, columns):
        raise RuntimeError("database is locked")


def _orchestrator(directory, store=None):
    registry = SchemaRegistry(store or InMemoryTableStore(), timeout_seconds=1.0)
    return PublishOrchestrator(registry, DefinitionFileStore(directory))


class TestPublish:
    """Tests for PublishOrchestrator.publish."""

    @pytest.mark.asyncio
    async def test_publish(self, data_dir, product_data):
        """A valid definition is written and registered."""
        orchestrator = _orchestrator(data_dir)

        entry = await orchestrator.publish(product_data)

        assert entry.name == "Product"
        assert orchestrator.registry.lookup("Product") is entry
        with open(os.path.join(data_dir, "Product.json"), encoding="utf-8") as f:
            persisted = json.load(f)
        assert persisted == entry.definition.to_dict()

    @pytest.mark.asyncio
    async def test_invalid_writes_nothing(self, data_dir, product_data):
        """A definition failing validation leaves no file."""
        product_data["fields"][0]["type"] = "blob"
        orchestrator = _orchestrator(data_dir)

        with pytest.raises(ValidationError):
            await orchestrator.publish(product_data)

        assert os.listdir(data_dir) == []
        assert orchestrator.registry.lookup("Product") is None

    @pytest.mark.asyncio
    async def test_table_conflict_writes_nothing(self, data_dir, product_data):
        """A table already owned by another model is rejected before writing."""
        orchestrator = _orchestrator(data_dir)
        await orchestrator.publish(product_data)
        product_data["name"] = "Item"
        product_data["tableName"] = "products"

        with pytest.raises(TableConflictError):
            await orchestrator.publish(product_data)

        assert os.listdir(data_dir) == ["Product.json"]

    @pytest.mark.asyncio
    async def test_number_to_string_writes_nothing(self, data_dir, product_data):
        """Redefining a number field as a string is rejected before writing."""
        orchestrator = _orchestrator(data_dir)
        first = await orchestrator.publish(product_data)
        product_data["fields"][1]["type"] = "string"

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.publish(product_data)

        assert "products.price" in exc_info.value.errors[0]
        assert orchestrator.registry.lookup("Product") is first
        with open(os.path.join(data_dir, "Product.json"), encoding="utf-8") as f:
            assert json.load(f)["fields"][1]["type"] == "number"

    @pytest.mark.asyncio
    async def test_partial_publish(self, data_dir, product_data):
        """A written definition that fails to register is a partial publish."""
        orchestrator = _orchestrator(data_dir, store=FailingEnsureStore())

        with pytest.raises(PartialPublishError) as exc_info:
            await orchestrator.publish(product_data)

        error = exc_info.value
        assert error.code == "PARTIAL_PUBLISH"
        assert error.path == os.path.join(data_dir, "Product.json")
        assert error.details["cause"] == "STORAGE_ERROR"
        assert os.path.exists(error.path)
        assert orchestrator.registry.lookup("Product") is None

    @pytest.mark.asyncio
    async def test_publish_twice(self, data_dir, product_data):
        """Republishing replaces the file and the entry."""
        orchestrator = _orchestrator(data_dir)
        await orchestrator.publish(product_data)
        product_data["rbac"]["Viewer"] = []

        await orchestrator.publish(product_data)

        assert len(orchestrator.registry) == 1
        with open(os.path.join(data_dir, "Product.json"), encoding="utf-8") as f:
            assert json.load(f)["rbac"]["Viewer"] == []


class TestBootLoader:
    """Tests for BootLoader.load."""

    @pytest.mark.asyncio
    async def test_restores_published_models(self, data_dir, product_data):
        """Definitions published before a restart are active again."""
        await _orchestrator(data_dir).publish(product_data)

        fresh = _orchestrator(data_dir)
        report = await BootLoader(fresh.file_store, fresh).load()

        assert report.loaded == ["Product"]
        assert report.skipped == {}
        assert fresh.registry.lookup("Product") is not None

    @pytest.mark.asyncio
    async def test_skips_bad_files(self, data_dir, product_data):
        """Malformed and invalid files are skipped; the rest load."""
        with open(os.path.join(data_dir, "Broken.json"), "w") as f:
            f.write("{not json")
        invalid = dict(product_data, name="Invalid", fields=[])
        with open(os.path.join(data_dir, "Invalid.json"), "w") as f:
            json.dump(invalid, f)
        with open(os.path.join(data_dir, "Product.json"), "w") as f:
            json.dump(product_data, f)

        orchestrator = _orchestrator(data_dir)
        report = await BootLoader(orchestrator.file_store, orchestrator).load()

        assert report.loaded == ["Product"]
        assert sorted(os.path.basename(p) for p in report.skipped) == [
            "Broken.json",
            "Invalid.json",
        ]
        assert report.skipped[os.path.join(data_dir, "Broken.json")].startswith("unreadable")

    @pytest.mark.asyncio
    async def test_table_conflict_skipped(self, data_dir, product_data):
        """The second of two models sharing a table is skipped."""
        with open(os.path.join(data_dir, "A.json"), "w") as f:
            json.dump(dict(product_data, name="A", tableName="shared"), f)
        with open(os.path.join(data_dir, "B.json"), "w") as f:
            json.dump(dict(product_data, name="B", tableName="shared"), f)

        orchestrator = _orchestrator(data_dir)
        report = await BootLoader(orchestrator.file_store, orchestrator).load()

        assert report.loaded == ["A"]
        assert list(report.skipped) == [os.path.join(data_dir, "B.json")]

    @pytest.mark.asyncio
    async def test_empty_directory(self, data_dir):
        """No files means nothing loaded."""
        orchestrator = _orchestrator(os.path.join(data_dir, "absent"))
        report = await BootLoader(orchestrator.file_store, orchestrator).load()

        assert report.to_dict() == {"loaded": [], "skipped": {}}
