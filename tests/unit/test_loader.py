"""Tests for recordcast/loader.py - schema documents."""

import pytest

from recordcast.engine import validate
from recordcast.errors import SchemaCycleError, SchemaFileError
from recordcast.expressions import Expr
from recordcast.loader import (
    load_catalog,
    load_schema,
    load_schema_file,
    validate_schema_file,
)
from recordcast.result import ErrorKind
from recordcast.schema import NullPolicy
from recordcast.settings import reset_settings

PERSON_YAML = """
name: Person
fields:
  - name: age
    type: integer
    required: true
    rules:
      - when: "age < ${MIN_AGE}"
        message: "must be at least ${MIN_AGE}"
  - name: tags
    type: {array: string}
  - name: address
    embeds_one: Address
    required: true
schemas:
  Address:
    fields:
      - name: city
        type: string
        required: true
"""


class TestLoadSchema:
    """Tests for building schemas from documents."""

    def test_basic_document(self):
        """Fields, required names and rules are built."""
        schema = load_schema(
            {
                "name": "Person",
                "fields": [
                    {"name": "age", "type": "integer", "required": True},
                    {"name": "nickname", "type": "string", "default": "n/a"},
                ],
            }
        )
        assert schema.name == "Person"
        assert schema.field_names == ["age", "nickname"]
        assert schema.required == frozenset({"age"})
        assert schema.defaults()["nickname"] == "n/a"

    def test_rules_are_compiled(self):
        """Rule conditions become compiled expressions."""
        schema = load_schema(
            {
                "name": "Person",
                "fields": [
                    {
                        "name": "age",
                        "type": "integer",
                        "rules": [{"when": "age < 0", "message": "must be non-negative"}],
                    }
                ],
            }
        )
        clause = schema.rules["age"][0]
        assert isinstance(clause.condition, Expr)
        assert clause.message == "must be non-negative"
        assert clause.index == 1

    def test_message_expression(self):
        """message_expr is evaluated against the bindings."""
        schema = load_schema(
            {
                "name": "Person",
                "fields": [
                    {
                        "name": "age",
                        "type": "integer",
                        "rules": [{"when": "age < limit", "message_expr": "f'below {limit}'"}],
                    }
                ],
            }
        )
        result = validate(schema, {"age": 1}, {"limit": 5})
        assert [e.message for e in result.errors] == ["below 5"]

    def test_null_policy(self):
        """null_policy strings map to NullPolicy."""
        schema = load_schema(
            {
                "name": "Thing",
                "fields": [{"name": "a", "type": "integer", "null_policy": "use_default"}],
            }
        )
        assert schema.get_field("a").null_policy is NullPolicy.USE_DEFAULT

    def test_named_sub_schema(self, monkeypatch):
        """A named schema can be selected instead of the root."""
        import yaml

        monkeypatch.setenv("MIN_AGE", "18")
        document = yaml.safe_load(PERSON_YAML)
        assert load_schema(document, "Address").field_names == ["city"]
        catalog = load_catalog(document)
        assert list(catalog) == ["Person", "Address"]
        assert catalog["Person"].get_field("address").schema is catalog["Address"]

    def test_unknown_named_schema(self):
        """Asking for an undefined schema fails."""
        with pytest.raises(SchemaFileError):
            load_schema({"name": "A", "fields": [{"name": "x", "type": "string"}]}, "B")


class TestLoadSchemaFile:
    """Tests for YAML files."""

    def test_env_expansion(self, schema_file, monkeypatch):
        """${VAR} references are expanded before building."""
        monkeypatch.setenv("MIN_AGE", "18")
        schema = load_schema_file(schema_file(PERSON_YAML))

        result = validate(schema, {"age": "16", "tags": ["a"], "address": {"city": "Oslo"}})

        assert [(e.field, e.kind, e.message) for e in result.errors] == [
            ("age", ErrorKind.RULE, "must be at least 18")
        ]

    def test_missing_file(self, tmp_path):
        """Missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_schema_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, schema_file):
        """Broken YAML is a SchemaFileError."""
        with pytest.raises(SchemaFileError):
            load_schema_file(schema_file("name: [unclosed"))

    def test_empty_file(self, schema_file):
        """An empty document is rejected."""
        with pytest.raises(SchemaFileError):
            load_schema_file(schema_file(""))


class TestDocumentErrors:
    """Malformed documents raise SchemaFileError."""

    @pytest.mark.parametrize(
        "document",
        [
            {"fields": [{"name": "a", "type": "string"}]},
            {"name": "A", "fields": []},
            {"name": "A", "fields": [{"name": "a"}]},
            {"name": "A", "fields": [{"name": "a", "type": "string", "embeds_one": "B"}]},
            {"name": "A", "fields": [{"name": "a", "type": "string"}, {"name": "a", "type": "string"}]},
            {"name": "A", "fields": [{"name": "a", "type": "string", "null_policy": "maybe"}]},
            {"name": "A", "fields": [{"name": "a", "type": "string", "rules": [{"when": "True"}]}]},
        ],
    )
    def test_shape_problems(self, document):
        """Shape problems are reported together."""
        with pytest.raises(SchemaFileError):
            load_schema(document)

    def test_not_a_mapping(self):
        """A document must be a mapping."""
        with pytest.raises(SchemaFileError):
            load_schema(["not", "a", "mapping"])

    def test_unknown_type(self):
        """Unknown types surface as SchemaFileError with field context."""
        with pytest.raises(SchemaFileError) as exc_info:
            load_schema({"name": "A", "fields": [{"name": "a", "type": "integr"}]})
        assert exc_info.value.field == "a"

    def test_bad_expression(self):
        """Expressions that do not compile are rejected at load time."""
        with pytest.raises(SchemaFileError):
            load_schema(
                {
                    "name": "A",
                    "fields": [
                        {"name": "a", "type": "string", "rules": [{"when": "a ==", "message": "m"}]}
                    ],
                }
            )

    def test_object_walking_expression_rejected(self, tmp_path):
        """Rules reaching into object internals are rejected before anything runs."""
        marker = tmp_path / "created"
        rule = (
            "[c for c in ().__class__.__mro__[1].__subclasses__() if c.__name__ == 'Popen']"
            f"[0](['touch', '{marker}']).wait() == 0"
        )
        document = {
            "name": "A",
            "fields": [{"name": "a", "type": "string", "rules": [{"when": rule, "message": "m"}]}],
        }
        with pytest.raises(SchemaFileError) as exc_info:
            load_schema(document)
        assert exc_info.value.field == "a"
        assert not marker.exists()

    def test_attribute_in_message_expression_rejected(self):
        """message_expr uses the same restricted language."""
        with pytest.raises(SchemaFileError):
            load_schema(
                {
                    "name": "A",
                    "fields": [
                        {
                            "name": "a",
                            "type": "string",
                            "rules": [{"when": "a == ''", "message_expr": "a.__class__.__name__"}],
                        }
                    ],
                }
            )

    def test_unknown_embed(self):
        """Embeds must name a defined schema."""
        with pytest.raises(SchemaFileError) as exc_info:
            load_schema({"name": "A", "fields": [{"name": "b", "embeds_one": "B"}]})
        assert "known_schemas" in exc_info.value.details

    def test_cycle(self):
        """Embedding cycles are detected."""
        document = {
            "name": "A",
            "fields": [{"name": "b", "embeds_one": "B"}],
            "schemas": {
                "B": {"fields": [{"name": "c", "embeds_many": "C"}]},
                "C": {"fields": [{"name": "b", "embeds_one": "B"}]},
            },
        }
        with pytest.raises(SchemaCycleError) as exc_info:
            load_schema(document)
        assert exc_info.value.path == ["B", "C", "B"]

    def test_self_embedding(self):
        """A schema cannot embed itself."""
        with pytest.raises(SchemaCycleError):
            load_schema({"name": "A", "fields": [{"name": "a", "embeds_one": "A"}]})

    def test_source_expressions_disabled(self, monkeypatch):
        """Source expressions can be turned off by settings."""
        monkeypatch.setenv("RECORDCAST_ALLOW_SOURCE_EXPRESSIONS", "false")
        reset_settings()
        document = {
            "name": "A",
            "fields": [{"name": "a", "type": "integer", "rules": [{"when": "a < 0", "message": "m"}]}],
        }
        with pytest.raises(SchemaFileError):
            load_schema(document)

    def test_literal_conditions_allowed_when_disabled(self, monkeypatch):
        """Non-string conditions are literals and always allowed."""
        monkeypatch.setenv("RECORDCAST_ALLOW_SOURCE_EXPRESSIONS", "false")
        reset_settings()
        schema = load_schema(
            {
                "name": "A",
                "fields": [{"name": "a", "type": "integer", "rules": [{"when": True, "message": "m"}]}],
            }
        )
        assert schema.rules["a"][0].condition is True


class TestValidateSchemaFile:
    """Tests for validate_schema_file."""

    def test_valid(self, schema_file, monkeypatch):
        """A good document has no problems."""
        monkeypatch.setenv("MIN_AGE", "18")
        assert validate_schema_file(schema_file(PERSON_YAML)) == []

    def test_problems_listed(self, schema_file, tmp_path):
        """Problems are returned as strings."""
        assert len(validate_schema_file(schema_file("name: A\nfields: []\n"))) == 1
        assert len(validate_schema_file(tmp_path / "missing.yaml")) == 1
