"""Tests for recordcast/result.py - results, errors and traversal."""

import pytest

from recordcast.engine import validate
from recordcast.errors import InvalidRecordError
from recordcast.result import ErrorKind, FieldError, ValidationResult, traverse_errors
from recordcast.schema import SchemaBuilder, when


class TestFieldError:
    """Tests for FieldError."""

    def test_to_dict_omits_empty_parts(self):
        """Clause index and details only appear when set."""
        error = FieldError("age", "can't be blank", ErrorKind.REQUIRED)
        assert error.to_dict() == {"field": "age", "message": "can't be blank", "kind": "required"}

    def test_to_dict_rule(self):
        """Rule errors carry their clause index."""
        error = FieldError("age", "too low", ErrorKind.RULE, clause_index=2)
        assert error.to_dict()["clause_index"] == 2
        assert str(error) == "age: too low (clause #2)"

    def test_whole_record_str(self):
        """Errors without a field are shown as record errors."""
        assert str(FieldError(None, "is invalid", ErrorKind.CAST)) == "<record>: is invalid"


class TestValidationResult:
    """Tests for ValidationResult behaviour."""

    def test_add_error_default_messages(self, person_schema):
        """Cast and required errors get default messages."""
        result = ValidationResult(person_schema)
        result.add_error("age", ErrorKind.CAST)
        result.add_error("age", ErrorKind.REQUIRED)
        assert [e.message for e in result.errors] == ["is invalid", "can't be blank"]

    def test_duplicate_errors_are_kept(self, person_schema):
        """Errors are never deduplicated."""
        result = ValidationResult(person_schema)
        result.add_error("age", ErrorKind.RULE, "x", clause_index=1)
        result.add_error("age", ErrorKind.RULE, "x", clause_index=1)
        assert len(result.errors_for("age")) == 2

    def test_fetch_field_prefers_changes(self, person_schema):
        """Changes take precedence over base data."""
        result = ValidationResult(person_schema, data={"age": 1}, changes={"age": 2})
        assert result.fetch_field("age") == 2
        assert result.get_change("missing", "d") == "d"

    def test_valid_and_invalid_are_opposites(self, person_schema):
        """invalid mirrors valid as errors are added."""
        result = ValidationResult(person_schema)
        assert (result.valid, result.invalid) == (True, False)
        result.add_error("age", ErrorKind.REQUIRED)
        assert (result.valid, result.invalid) == (False, True)

    def test_apply_invalid_raises(self, person_schema):
        """apply() refuses invalid results."""
        result = validate(person_schema, {"age": -1})
        with pytest.raises(InvalidRecordError) as exc_info:
            result.apply()
        assert exc_info.value.result is result
        assert exc_info.value.details["error_count"] == 1
        assert exc_info.value.schema == "Person"

    def test_apply_valid(self, person_schema):
        """apply() builds a typed record."""
        record = validate(person_schema, {"age": "4"}).apply()
        assert record == person_schema.record_type(age=4)

    def test_error_count_includes_nested(self, customer_schema):
        """error_count counts nested errors too."""
        result = validate(customer_schema, {"address": {}, "previous": [{}, {}]})
        assert len(result.errors) == 1
        assert result.error_count == 4

    def test_to_dict(self, customer_schema):
        """to_dict serialises nested results."""
        data = validate(customer_schema, {"name": "Ann", "address": {"city": "Oslo"}}).to_dict()
        assert data["valid"] is True
        assert data["changes"]["address"]["changes"] == {"city": "Oslo"}
        assert data["errors"] == []

    def test_repr(self, person_schema):
        """repr shows the validity."""
        assert "invalid" in repr(validate(person_schema, {}))


class TestTraverseErrors:
    """Tests for traverse_errors."""

    def test_flat(self, person_schema):
        """Scalar errors map to message lists."""
        assert traverse_errors(validate(person_schema, {"age": -1})) == {
            "age": ["must be non-negative"]
        }

    def test_nested(self, customer_schema):
        """Nested results become nested mappings and lists."""
        result = validate(
            customer_schema,
            {"address": {}, "previous": [{"city": "Rome"}, {}]},
        )
        assert traverse_errors(result) == {
            "name": ["can't be blank"],
            "address": {"city": ["can't be blank"]},
            "previous": [{}, {"city": ["can't be blank"]}],
        }

    def test_record_errors(self, person_schema):
        """Whole-record errors use the __record__ key."""
        assert traverse_errors(validate(person_schema, 3)) == {"__record__": ["is invalid"]}

    def test_field_with_own_and_nested_errors(self):
        """A field with its own and nested errors keeps both."""
        child = SchemaBuilder("Child").field("x", "integer", required=True).build()
        parent = (
            SchemaBuilder("Parent")
            .embeds_one("child", child, rules=[when(True, "bad child")])
            .build()
        )
        result = validate(parent, {"child": {}})
        assert traverse_errors(result) == {
            "child": {"__errors__": ["bad child"], "__nested__": {"x": ["can't be blank"]}}
        }

    def test_custom_formatter(self, person_schema):
        """A formatter controls what is collected."""
        result = validate(person_schema, {"age": -1})
        assert traverse_errors(result, lambda e: e.kind.value) == {"age": ["rule"]}
