"""
Unit tests for value coercion and record payload validation.

Tests cover:
- Per-type coercion rules
- Create payload defaults and required fields
- Update patch rules
- Storage encode/decode
"""

from datetime import date, datetime, timezone

import pytest

from backend.modelforge_server.crud.coerce import (
    coerce_create_payload,
    coerce_update_payload,
    from_storage,
    to_storage,
)
from backend.modelforge_server.errors import UnknownFieldError, ValidationError
from backend.modelforge_server.schema.types import FieldDefinition, FieldType, ModelDefinition
from backend.modelforge_server.schema.values import coerce_value


@pytest.fixture
def product():
    return ModelDefinition(
        name="Product",
        fields=(
            FieldDefinition("name", FieldType.STRING, required=True),
            FieldDefinition("price", FieldType.NUMBER, required=True),
            FieldDefinition("inStock", FieldType.BOOLEAN, default=True),
            FieldDefinition("releasedOn", FieldType.DATE),
        ),
    )


class TestCoerceValue:
    """Tests for coerce_value."""

    def test_string_accepts_str_only(self):
        """Strings pass through; other types are rejected."""
        assert coerce_value("name", FieldType.STRING, "Pen") == "Pen"
        with pytest.raises(ValidationError):
            coerce_value("name", FieldType.STRING, 5)

    @pytest.mark.parametrize("value,expected", [(1, 1.0), (1.5, 1.5), ("2.25", 2.25), (" 3 ", 3.0)])
    def test_number(self, value, expected):
        """Numbers and numeric strings coerce to float."""
        assert coerce_value("price", FieldType.NUMBER, value) == expected

    @pytest.mark.parametrize("value", ["cheap", True, None, [], "nan", "inf"])
    def test_number_rejects(self, value):
        """Non-numeric values, booleans and non-finite numbers are rejected."""
        with pytest.raises(ValidationError):
            coerce_value("price", FieldType.NUMBER, value)

    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, True),
            (False, False),
            (1, True),
            (0, False),
            ("yes", True),
            ("TRUE", True),
            ("off", False),
            ("", False),
        ],
    )
    def test_boolean(self, value, expected):
        """Booleans, numbers and boolean words coerce."""
        assert coerce_value("inStock", FieldType.BOOLEAN, value) is expected

    def test_boolean_rejects_other_strings(self):
        """Strings that are not boolean words are rejected."""
        with pytest.raises(ValidationError):
            coerce_value("inStock", FieldType.BOOLEAN, "maybe")

    def test_date_iso_with_z(self):
        """ISO strings with a trailing Z are read as UTC."""
        assert (
            coerce_value("releasedOn", FieldType.DATE, "2024-03-01T12:00:00Z")
            == "2024-03-01T12:00:00.000000+00:00"
        )

    def test_date_naive_is_utc(self):
        """Naive datetimes are taken as UTC."""
        assert (
            coerce_value("releasedOn", FieldType.DATE, "2024-03-01")
            == "2024-03-01T00:00:00.000000+00:00"
        )

    def test_date_offset_normalized(self):
        """Offsets are converted to UTC."""
        assert (
            coerce_value("releasedOn", FieldType.DATE, "2024-03-01T02:00:00+02:00")
            == "2024-03-01T00:00:00.000000+00:00"
        )

    def test_date_epoch_millis(self):
        """Numbers are Unix milliseconds."""
        assert coerce_value("releasedOn", FieldType.DATE, 0) == "1970-01-01T00:00:00.000000+00:00"

    def test_date_objects(self):
        """date and datetime objects are accepted."""
        assert coerce_value("releasedOn", FieldType.DATE, date(2024, 1, 2)).startswith("2024-01-02T00:00")
        assert coerce_value(
            "releasedOn", FieldType.DATE, datetime(2024, 1, 2, 3, tzinfo=timezone.utc)
        ).startswith("2024-01-02T03:00")

    def test_date_rejects_garbage(self):
        """Unparseable dates are rejected."""
        with pytest.raises(ValidationError):
            coerce_value("releasedOn", FieldType.DATE, "last tuesday")


class TestCreatePayload:
    """Tests for coerce_create_payload."""

    def test_valid_payload(self, product):
        """Values are coerced and every field is present."""
        row = coerce_create_payload(product, {"name": "Pen", "price": "1.5"})

        assert row == {"name": "Pen", "price": 1.5, "inStock": True, "releasedOn": None}
        assert list(row) == ["name", "price", "inStock", "releasedOn"]

    def test_missing_required(self, product):
        """Missing required fields are all reported."""
        with pytest.raises(ValidationError) as exc_info:
            coerce_create_payload(product, {})

        assert exc_info.value.errors == [
            "Field 'name' is required",
            "Field 'price' is required",
        ]

    def test_null_uses_default(self, product):
        """Explicit null takes the default."""
        row = coerce_create_payload(product, {"name": "Pen", "price": 1, "inStock": None})
        assert row["inStock"] is True

    def test_unknown_field_suggests(self, product):
        """Unknown fields are rejected with close matches."""
        with pytest.raises(UnknownFieldError) as exc_info:
            coerce_create_payload(product, {"name": "Pen", "prise": 1})

        assert exc_info.value.suggestions == ["price"]
        assert exc_info.value.code == "UNKNOWN_FIELD"

    def test_system_column_rejected(self, product):
        """id and timestamps cannot be written."""
        with pytest.raises(ValidationError) as exc_info:
            coerce_create_payload(product, {"id": "x", "name": "Pen", "price": 1})
        assert exc_info.value.field_name == "id"


class TestUpdatePayload:
    """Tests for coerce_update_payload."""

    def test_partial(self, product):
        """Only supplied fields are returned."""
        assert coerce_update_payload(product, {"price": "3"}) == {"price": 3.0}

    def test_required_cannot_be_nulled(self, product):
        """Setting a required field to null is rejected."""
        with pytest.raises(ValidationError):
            coerce_update_payload(product, {"name": None})

    def test_optional_can_be_nulled(self, product):
        """Optional fields may be cleared."""
        assert coerce_update_payload(product, {"releasedOn": None}) == {"releasedOn": None}

    def test_timestamps_rejected(self, product):
        """Timestamps cannot be patched."""
        with pytest.raises(ValidationError):
            coerce_update_payload(product, {"updated_at": 0})


class TestStorageEncoding:
    """Tests for to_storage and from_storage."""

    def test_boolean_stored_as_int(self, product):
        """Booleans are stored as 0/1."""
        assert to_storage(product, {"inStock": False, "price": 2.0}) == {"inStock": 0, "price": 2.0}

    def test_decode_row(self, product):
        """Rows decode per the definition with system columns around the fields."""
        record = from_storage(
            product,
            {
                "id": "abc",
                "name": "Pen",
                "price": 2,
                "inStock": 1,
                "releasedOn": None,
                "legacy": "kept",
                "created_at": 1,
                "updated_at": 2,
            },
        )

        assert record == {
            "id": "abc",
            "name": "Pen",
            "price": 2.0,
            "inStock": True,
            "releasedOn": None,
            "created_at": 1,
            "updated_at": 2,
        }
        assert list(record)[0] == "id"

    def test_decode_text_column_values(self, product):
        """Values read back as text from a column first declared as text decode by field type."""
        record = from_storage(
            product,
            {"id": "abc", "name": 7, "price": "1.5", "inStock": "1"},
        )

        assert record["name"] == "7"
        assert record["price"] == 1.5
        assert record["inStock"] is True

    def test_decode_keeps_unparseable_values(self, product):
        """Values written under an earlier field type come back as stored."""
        record = from_storage(
            product,
            {"id": "abc", "name": "Pen", "price": "P-1", "inStock": "yes"},
        )

        assert record["price"] == "P-1"
        assert record["inStock"] == "yes"
