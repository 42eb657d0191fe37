"""
Shared fixtures for the ModelForge test suite.
"""

import copy
import tempfile

import pytest

PRODUCT_DEFINITION = {
    "name": "Product",
    "fields": [
        {"name": "name", "type": "string", "required": True},
        {"name": "price", "type": "number", "required": True},
        {"name": "inStock", "type": "boolean"},
    ],
    "rbac": {
        "Admin": ["all"],
        "Manager": ["read", "create", "update"],
        "Viewer": ["read"],
    },
}


@pytest.fixture
def product_data():
    """Raw Product definition (fresh copy per test)."""
    return copy.deepcopy(PRODUCT_DEFINITION)


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir
