"""
Unit tests for generated CRUD handlers and request dispatch.

Tests cover:
- The Product permission scenario
- Record create/read/update/delete semantics
- NotFound for absent models and records
- Storage failures and timeouts surfacing as StorageError
"""

import asyncio

import pytest

from backend.modelforge_server.crud.dispatcher import CrudDispatcher, Operation
from backend.modelforge_server.errors import (
    IdentityError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StorageTimeoutError,
    UniqueConstraintError,
    UnknownFieldError,
    ValidationError,
)
from backend.modelforge_server.identity import Identity
from backend.modelforge_server.schema.registry import SchemaRegistry
from backend.modelforge_server.schema.types import Action, Role
from backend.modelforge_server.storage.memory import InMemoryTableStore

ADMIN = Identity("u-admin", Role.ADMIN)
MANAGER = Identity("u-manager", Role.MANAGER)
VIEWER = Identity("u-viewer", Role.VIEWER)


class SlowInsertStore(InMemoryTableStore):
    async def insert(self, name, row):
        await asyncio.sleep(1.0)
        return await super().insert(name, row)


class BrokenSelectStore(InMemoryTableStore):
    async def select_all(self, name):
        raise OSError("disk I/O error")


async def _dispatcher(product_data, store=None, timeout_seconds=1.0):
    store = store or InMemoryTableStore()
    await store.connect()
    registry = SchemaRegistry(store, timeout_seconds=timeout_seconds)
    await registry.register(registry.validate(product_data))
    return CrudDispatcher(registry), store


class TestProductScenario:
    """The Product permission scenario end to end."""

    @pytest.mark.asyncio
    async def test_viewer_create_denied(self, product_data):
        """Viewer cannot create and nothing is stored."""
        dispatcher, store = await _dispatcher(product_data)

        with pytest.raises(PermissionDeniedError):
            await dispatcher.dispatch(
                "Product", Operation.CREATE, VIEWER, payload={"name": "Pen", "price": 1.5}
            )

        assert await store.select_all("products") == []

    @pytest.mark.asyncio
    async def test_admin_create(self, product_data):
        """Admin creates a record with a generated id."""
        dispatcher, _ = await _dispatcher(product_data)

        record = await dispatcher.dispatch(
            "Product",
            Operation.CREATE,
            ADMIN,
            payload={"name": "Pen", "price": 1.5, "inStock": True},
        )

        assert record["id"]
        assert record["name"] == "Pen"
        assert record["price"] == 1.5
        assert record["inStock"] is True
        assert record["created_at"] == record["updated_at"]

    @pytest.mark.asyncio
    async def test_manager_delete_denied(self, product_data):
        """Manager cannot delete."""
        dispatcher, _ = await _dispatcher(product_data)
        record = await dispatcher.dispatch(
            "Product", Operation.CREATE, MANAGER, payload={"name": "Pen", "price": 1}
        )

        with pytest.raises(PermissionDeniedError):
            await dispatcher.dispatch(
                "Product", Operation.DELETE, MANAGER, record_id=record["id"]
            )

    @pytest.mark.asyncio
    async def test_admin_delete_missing(self, product_data):
        """Deleting a nonexistent id is NotFound."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(NotFoundError) as exc_info:
            await dispatcher.dispatch("Product", Operation.DELETE, ADMIN, record_id="missing")

        assert exc_info.value.resource_id == "missing"


class TestRecordOperations:
    """Tests for record semantics."""

    @pytest.mark.asyncio
    async def test_list_all_in_creation_order(self, product_data):
        """list_all returns every record, oldest first."""
        dispatcher, _ = await _dispatcher(product_data)
        for name in ("Pen", "Ink", "Pad"):
            await dispatcher.dispatch(
                "Product", Operation.CREATE, ADMIN, payload={"name": name, "price": 1}
            )

        records = await dispatcher.dispatch("Product", Operation.LIST_ALL, VIEWER)

        assert [r["name"] for r in records] == ["Pen", "Ink", "Pad"]

    @pytest.mark.asyncio
    async def test_get_by_id(self, product_data):
        """Records are fetched by id."""
        dispatcher, _ = await _dispatcher(product_data)
        created = await dispatcher.dispatch(
            "Product", Operation.CREATE, ADMIN, payload={"name": "Pen", "price": 1}
        )

        fetched = await dispatcher.dispatch(
            "Product", Operation.GET_BY_ID, VIEWER, record_id=created["id"]
        )

        assert fetched == created

    @pytest.mark.asyncio
    async def test_update_is_partial(self, product_data):
        """Update changes only supplied fields."""
        dispatcher, _ = await _dispatcher(product_data)
        created = await dispatcher.dispatch(
            "Product",
            Operation.CREATE,
            ADMIN,
            payload={"name": "Pen", "price": 1, "inStock": False},
        )

        updated = await dispatcher.dispatch(
            "Product",
            Operation.UPDATE,
            MANAGER,
            payload={"price": "2.5"},
            record_id=created["id"],
        )

        assert updated["price"] == 2.5
        assert updated["name"] == "Pen"
        assert updated["inStock"] is False
        assert updated["updated_at"] >= created["updated_at"]

    @pytest.mark.asyncio
    async def test_update_missing(self, product_data):
        """Updating a nonexistent id is NotFound."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(NotFoundError):
            await dispatcher.dispatch(
                "Product", Operation.UPDATE, ADMIN, payload={"price": 1}, record_id="nope"
            )

    @pytest.mark.asyncio
    async def test_delete_then_get(self, product_data):
        """A deleted record is gone."""
        dispatcher, _ = await _dispatcher(product_data)
        created = await dispatcher.dispatch(
            "Product", Operation.CREATE, ADMIN, payload={"name": "Pen", "price": 1}
        )

        assert (
            await dispatcher.dispatch("Product", Operation.DELETE, ADMIN, record_id=created["id"])
            is None
        )
        with pytest.raises(NotFoundError):
            await dispatcher.dispatch(
                "Product", Operation.GET_BY_ID, ADMIN, record_id=created["id"]
            )

    @pytest.mark.asyncio
    async def test_missing_required(self, product_data):
        """Create without required fields is a ValidationError."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(ValidationError):
            await dispatcher.dispatch("Product", Operation.CREATE, ADMIN, payload={"name": "Pen"})

    @pytest.mark.asyncio
    async def test_unknown_field(self, product_data):
        """Unknown payload fields are rejected."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(UnknownFieldError):
            await dispatcher.dispatch(
                "Product",
                Operation.CREATE,
                ADMIN,
                payload={"name": "Pen", "price": 1, "colour": "red"},
            )

    @pytest.mark.asyncio
    async def test_permission_checked_before_validation(self, product_data):
        """A denied caller gets PermissionDenied even for a bad payload."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(PermissionDeniedError):
            await dispatcher.dispatch("Product", Operation.CREATE, VIEWER, payload={"bogus": 1})

    @pytest.mark.asyncio
    async def test_unique_field(self, product_data):
        """Duplicate values in a unique field are rejected."""
        product_data["fields"].append({"name": "sku", "type": "string", "unique": True})
        dispatcher, _ = await _dispatcher(product_data)
        payload = {"name": "Pen", "price": 1, "sku": "P-1"}
        await dispatcher.dispatch("Product", Operation.CREATE, ADMIN, payload=payload)

        with pytest.raises(UniqueConstraintError):
            await dispatcher.dispatch("Product", Operation.CREATE, ADMIN, payload=payload)

    @pytest.mark.asyncio
    async def test_record_id_required(self, product_data):
        """Single-record operations need an id."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(ValidationError):
            await dispatcher.dispatch("Product", Operation.GET_BY_ID, ADMIN)


class TestDispatch:
    """Tests for dispatcher lookups and failures."""

    @pytest.mark.asyncio
    async def test_unknown_model(self, product_data):
        """Unknown model names are NotFound."""
        dispatcher, _ = await _dispatcher(product_data)

        with pytest.raises(NotFoundError) as exc_info:
            await dispatcher.dispatch("Order", Operation.LIST_ALL, ADMIN)

        assert exc_info.value.resource_type == "model"

    @pytest.mark.asyncio
    async def test_uses_latest_definition(self, product_data):
        """Each dispatch resolves the current entry."""
        dispatcher, _ = await _dispatcher(product_data)
        product_data["fields"].append({"name": "sku", "type": "string"})
        registry = dispatcher.registry
        await registry.register(registry.validate(product_data))

        record = await dispatcher.dispatch(
            "Product", Operation.CREATE, ADMIN, payload={"name": "Pen", "price": 1, "sku": "P-1"}
        )

        assert record["sku"] == "P-1"

    @pytest.mark.asyncio
    async def test_storage_timeout(self, product_data):
        """Storage calls past the bound fail with StorageTimeoutError."""
        dispatcher, _ = await _dispatcher(
            product_data, store=SlowInsertStore(), timeout_seconds=0.05
        )

        with pytest.raises(StorageTimeoutError):
            await dispatcher.dispatch(
                "Product", Operation.CREATE, ADMIN, payload={"name": "Pen", "price": 1}
            )

    @pytest.mark.asyncio
    async def test_storage_failure(self, product_data):
        """Backend errors surface as StorageError with the cause attached."""
        dispatcher, _ = await _dispatcher(product_data, store=BrokenSelectStore())

        with pytest.raises(StorageError) as exc_info:
            await dispatcher.dispatch("Product", Operation.LIST_ALL, ADMIN)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert exc_info.value.operation == "select_all"

    def test_operation_actions(self):
        """Operations map to permission actions."""
        assert Operation.LIST_ALL.action == Action.READ
        assert Operation.GET_BY_ID.action == Action.READ
        assert Operation.DELETE.action == Action.DELETE


class TestIdentity:
    """Tests for Identity.from_claims."""

    def test_valid(self):
        """Known roles resolve."""
        identity = Identity.from_claims("u1", "Manager")
        assert identity == Identity("u1", Role.MANAGER)

    def test_missing_role(self):
        """A missing role is rejected."""
        with pytest.raises(IdentityError):
            Identity.from_claims("u1", None)

    def test_unknown_role(self):
        """Roles outside the enumeration are rejected."""
        with pytest.raises(IdentityError) as exc_info:
            Identity.from_claims("u1", "root")
        assert exc_info.value.code == "UNAUTHENTICATED"
