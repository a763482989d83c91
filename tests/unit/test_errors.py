"""Tests for recordcast/errors.py - structured exception hierarchy."""

import pytest

from recordcast.errors import (
    ExpressionSyntaxError,
    InvalidRecordError,
    RecordcastError,
    SchemaCycleError,
    SchemaDefinitionError,
    SchemaFileError,
    UnknownTypeError,
    UnresolvedFieldError,
)


class TestRecordcastError:
    """Tests for base RecordcastError class."""

    def test_basic_message(self):
        """Test error with just a message."""
        error = RecordcastError("Something went wrong")
        assert str(error) == "Something went wrong"

    def test_with_schema_and_field(self):
        """Test error with schema and field context."""
        error = RecordcastError("Bad field", schema="Person", field="age")
        assert "[Person.age]" in str(error)
        assert "Bad field" in str(error)

    def test_with_details_and_suggestion(self):
        """Test error with details and a suggestion."""
        error = RecordcastError(
            "Broken",
            details={"type": "integr"},
            suggestion="Use 'integer'",
        )
        assert "type: integr" in str(error)
        assert "Suggestion: Use 'integer'" in str(error)

    def test_to_dict(self):
        """Test conversion to dictionary."""
        error = RecordcastError("Test error", schema="S", field="f", details={"k": "v"})
        assert error.to_dict() == {
            "error_type": "RecordcastError",
            "message": "Test error",
            "schema": "S",
            "field": "f",
            "details": {"k": "v"},
            "suggestion": None,
        }


class TestErrorHierarchy:
    """Tests for the specific error types."""

    @pytest.mark.parametrize(
        "error_class",
        [UnknownTypeError, UnresolvedFieldError, SchemaCycleError, ExpressionSyntaxError],
    )
    def test_definition_errors(self, error_class):
        """Definition errors share a base class."""
        assert issubclass(error_class, SchemaDefinitionError)
        assert issubclass(error_class, RecordcastError)

    def test_unknown_type_default_suggestion(self):
        """UnknownTypeError suggests valid tags."""
        error = UnknownTypeError("Unknown type", type_tag="integr")
        assert error.details["type"] == "'integr'"
        assert "ArrayOf" in error.suggestion

    def test_cycle_path(self):
        """SchemaCycleError shows the cycle."""
        error = SchemaCycleError("cycle", path=["A", "B", "A"])
        assert "A -> B -> A" in str(error)

    def test_schema_file_path(self):
        """SchemaFileError records the file."""
        error = SchemaFileError("bad", path="s.yaml")
        assert error.path == "s.yaml"
        assert "path: s.yaml" in str(error)

    def test_invalid_record_without_result(self):
        """InvalidRecordError works without a result."""
        error = InvalidRecordError("nope")
        assert error.result is None
