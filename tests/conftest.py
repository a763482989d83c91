"""Pytest configuration and shared fixtures."""

import os
import sys
from pathlib import Path

import pytest

# Make the package importable without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recordcast import SchemaBuilder, reset_settings, when  # noqa: E402


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate every test from RECORDCAST_* variables and cached settings."""
    for name in list(os.environ):
        if name.startswith("RECORDCAST_"):
            monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def person_schema():
    """Schema with one required integer field and a non-negative rule."""
    return (
        SchemaBuilder("Person")
        .field(
            "age",
            "integer",
            required=True,
            rules=[when(lambda age: age < 0, "must be non-negative")],
        )
        .build()
    )


@pytest.fixture
def address_schema():
    return (
        SchemaBuilder("Address")
        .field("street", "string")
        .field("city", "string", required=True)
        .build()
    )


@pytest.fixture
def customer_schema(address_schema):
    """Schema embedding one required address and a list of addresses."""
    return (
        SchemaBuilder("Customer")
        .field("name", "string", required=True)
        .embeds_one("address", address_schema, required=True)
        .embeds_many("previous", address_schema)
        .build()
    )


@pytest.fixture
def schema_file(tmp_path):
    """Write a schema document to a temporary YAML file."""

    def _write(text: str, name: str = "schema.yaml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
