"""Schema documents: build Schema descriptors from YAML or plain dicts.

Lets schemas live in configuration files next to the data they check.

Example YAML (person.yaml):
    name: Person
    fields:
      - name: age
        type: integer
        required: true
        rules:
          - when: "age < ${MIN_AGE}"
            message: "must be at least ${MIN_AGE}"
      - name: address
        embeds_one: Address
    schemas:
      Address:
        fields:
          - name: city
            type: string
            required: true

Rule conditions are Python expression source strings evaluated against the
binding environment. Messages are literal text unless given as
``message_expr``.

Usage:
    from recordcast.loader import load_schema_file
    person = load_schema_file("./schemas/person.yaml")
    address = load_schema_file("./schemas/person.yaml", name="Address")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from recordcast.env import expand_document
from recordcast.errors import (
    ExpressionSyntaxError,
    SchemaCycleError,
    SchemaDefinitionError,
    SchemaFileError,
)
from recordcast.expressions import Expr
from recordcast.schema import NullPolicy, Schema, SchemaBuilder
from recordcast.settings import get_settings

logger = logging.getLogger(__name__)

__all__ = [
    "FieldDocument",
    "RuleDocument",
    "SchemaBody",
    "SchemaDocument",
    "load_catalog",
    "load_schema",
    "load_schema_file",
    "read_document",
    "validate_schema_file",
]


NULL_POLICY_MAP = {
    "nullify": NullPolicy.NULLIFY,
    "use_default": NullPolicy.USE_DEFAULT,
    "default": NullPolicy.USE_DEFAULT,
}


# ============================================
# Document models
# ============================================


class RuleDocument(BaseModel):
    """One rule clause: the field is invalid when ``when`` is truthy."""

    when: Any = Field(..., description="Expression source string or literal condition")
    message: Optional[str] = Field(default=None, description="Literal error message")
    message_expr: Optional[str] = Field(default=None, description="Expression producing the message")

    @model_validator(mode="after")
    def validate_message(self) -> "RuleDocument":
        """Exactly one of message / message_expr must be given."""
        if (self.message is None) == (self.message_expr is None):
            raise ValueError("rule needs exactly one of 'message' or 'message_expr'")
        return self


class FieldDocument(BaseModel):
    """One field declaration."""

    name: str = Field(..., min_length=1, description="Field name")
    type: Any = Field(default=None, description="Type tag, e.g. 'integer' or {array: string}")
    embeds_one: Optional[str] = Field(default=None, description="Name of an embedded schema")
    embeds_many: Optional[str] = Field(default=None, description="Name of an embedded schema (list)")
    required: bool = Field(default=False)
    default: Any = Field(default=None)
    null_policy: str = Field(default="nullify", description="'nullify' or 'use_default'")
    rules: List[RuleDocument] = Field(default_factory=list)

    @field_validator("null_policy")
    @classmethod
    def validate_null_policy(cls, v: str) -> str:
        """Validate null_policy is a known value."""
        if v.lower() not in NULL_POLICY_MAP:
            raise ValueError(f"null_policy must be one of: {sorted(NULL_POLICY_MAP)}")
        return v.lower()

    @model_validator(mode="after")
    def validate_kind(self) -> "FieldDocument":
        """A field is exactly one of: typed, embeds_one, embeds_many."""
        given = [k for k in ("type", "embeds_one", "embeds_many") if getattr(self, k) is not None]
        if len(given) != 1:
            raise ValueError(
                f"field '{self.name}' needs exactly one of 'type', 'embeds_one' or 'embeds_many'"
            )
        return self

    @property
    def embed_target(self) -> Optional[str]:
        return self.embeds_one or self.embeds_many


class SchemaBody(BaseModel):
    """Field list of a named sub-schema."""

    fields: List[FieldDocument] = Field(..., min_length=1)
    empty_strings_as_null: Optional[bool] = Field(default=None)

    @model_validator(mode="after")
    def validate_unique_fields(self) -> "SchemaBody":
        """Field names must be unique within a schema."""
        seen: Set[str] = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(f"field '{field.name}' is declared more than once")
            seen.add(field.name)
        return self


class SchemaDocument(SchemaBody):
    """Top-level schema document with optional named sub-schemas."""

    name: str = Field(..., min_length=1, description="Root schema name")
    schemas: Dict[str, SchemaBody] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_names(self) -> "SchemaDocument":
        """The root name cannot also be a sub-schema name."""
        if self.name in self.schemas:
            raise ValueError(f"'{self.name}' is both the root schema and a named schema")
        return self

    def bodies(self) -> Dict[str, SchemaBody]:
        """All schema bodies by name, root first."""
        bodies: Dict[str, SchemaBody] = {self.name: self}
        bodies.update(self.schemas)
        return bodies


# ============================================
# Building
# ============================================


def _condition(value: Any, allow_source: bool, schema: str, field: str) -> Any:
    if not isinstance(value, str):
        return value
    if not allow_source:
        raise SchemaFileError(
            "Rule expressions given as source strings are disabled",
            schema=schema,
            field=field,
            suggestion="Set RECORDCAST_ALLOW_SOURCE_EXPRESSIONS=true or build the schema in Python",
        )
    try:
        return Expr(value)
    except ExpressionSyntaxError as e:
        raise ExpressionSyntaxError(e.message, source=value, schema=schema, field=field) from e


def _build_order(document: SchemaDocument, source: Optional[str] = None) -> List[str]:
    """Names in dependency order: embedded schemas before their parents.

    Raises:
        SchemaFileError: If an embed names an unknown schema
        SchemaCycleError: If embeds form a cycle
    """
    bodies = document.bodies()
    order: List[str] = []
    done: Set[str] = set()

    def visit(name: str, path: List[str]) -> None:
        if name in done:
            return
        if name in path:
            cycle = path[path.index(name):] + [name]
            raise SchemaCycleError(
                f"Embedded schemas form a cycle through '{name}'",
                schema=name,
                path=cycle,
            )
        for field in bodies[name].fields:
            target = field.embed_target
            if target is None:
                continue
            if target not in bodies:
                raise SchemaFileError(
                    f"Field '{name}.{field.name}' embeds unknown schema '{target}'",
                    path=source,
                    details={"known_schemas": ", ".join(sorted(bodies))},
                )
            visit(target, path + [name])
        done.add(name)
        order.append(name)

    for name in bodies:
        visit(name, [])
    return order


def _build_schema(
    name: str,
    body: SchemaBody,
    built: Mapping[str, Schema],
    allow_source: bool,
) -> Schema:
    builder = SchemaBuilder(name, empty_strings_as_null=body.empty_strings_as_null)

    for field in body.fields:
        null_policy = NULL_POLICY_MAP[field.null_policy]
        if field.embeds_one:
            builder.embeds_one(
                field.name, built[field.embeds_one], required=field.required, null_policy=null_policy
            )
        elif field.embeds_many:
            builder.embeds_many(
                field.name, built[field.embeds_many], required=field.required, null_policy=null_policy
            )
        else:
            builder.field(
                field.name,
                field.type,
                default=field.default,
                required=field.required,
                null_policy=null_policy,
            )

        for rule in field.rules:
            message: Any = rule.message
            if rule.message_expr is not None:
                message = _condition(rule.message_expr, allow_source, name, field.name)
            builder.rule(field.name, _condition(rule.when, allow_source, name, field.name), message)

    return builder.build()


def load_catalog(document: Mapping[str, Any], *, source: Optional[str] = None) -> Dict[str, Schema]:
    """Build every schema in a document.

    Args:
        document: Parsed document (dict from YAML/JSON)
        source: File path used in error messages

    Returns:
        Schemas by name, root first

    Raises:
        SchemaFileError: If the document is malformed
        SchemaCycleError: If embedded schemas form a cycle
    """
    if not isinstance(document, Mapping):
        raise SchemaFileError("Schema document must be a mapping", path=source)

    try:
        parsed = SchemaDocument.model_validate(expand_document(dict(document)))
    except ValidationError as e:
        problems = {
            ".".join(str(p) for p in err["loc"]) or "document": err["msg"]
            for err in e.errors()
        }
        raise SchemaFileError("Invalid schema document", path=source, details=problems) from e

    allow_source = get_settings().allow_source_expressions
    bodies = parsed.bodies()
    built: Dict[str, Schema] = {}

    for name in _build_order(parsed, source):
        try:
            built[name] = _build_schema(name, bodies[name], built, allow_source)
        except SchemaFileError as e:
            e.path = e.path or source
            raise
        except SchemaDefinitionError as e:
            raise SchemaFileError(
                e.message,
                schema=e.schema,
                field=e.field,
                path=source,
                details=dict(e.details),
                suggestion=e.suggestion,
            ) from e

    logger.debug("Loaded %d schema(s) from %s", len(built), source or "document")
    # Root first, then the named schemas in document order
    return {name: built[name] for name in bodies}


def load_schema(
    document: Mapping[str, Any],
    name: Optional[str] = None,
    *,
    source: Optional[str] = None,
) -> Schema:
    """Build one schema from a document: the root, or a named sub-schema."""
    catalog = load_catalog(document, source=source)
    if name is None:
        return next(iter(catalog.values()))
    if name not in catalog:
        raise SchemaFileError(
            f"Schema '{name}' is not defined",
            path=source,
            details={"known_schemas": ", ".join(catalog)},
        )
    return catalog[name]


def read_document(path: Union[str, Path]) -> Any:
    """Parse a YAML (or JSON) file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        SchemaFileError: If the file is not valid YAML or is empty
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SchemaFileError(f"Invalid YAML syntax: {e}", path=str(path)) from e

    if document is None:
        raise SchemaFileError("Empty file", path=str(path))
    return document


def load_schema_file(path: Union[str, Path], name: Optional[str] = None) -> Schema:
    """Load a schema from a YAML file.

    Args:
        path: Path to the schema document
        name: Named sub-schema to return instead of the root

    Raises:
        FileNotFoundError: If the file doesn't exist
        SchemaFileError: If the document is invalid
    """
    return load_schema(read_document(path), name, source=str(path))


def validate_schema_file(path: Union[str, Path]) -> List[str]:
    """Check a schema file without using it.

    Returns:
        List of problems (empty if the document is valid)
    """
    errors: List[str] = []
    try:
        load_catalog(read_document(path), source=str(path))
    except (SchemaFileError, SchemaDefinitionError) as e:
        errors.append(str(e))
    except FileNotFoundError as e:
        errors.append(str(e))
    return errors
