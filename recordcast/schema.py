"""Schema descriptors.

A Schema is immutable and built once per record type; every validate() call
shares it read-only. All consistency checks (unknown types, unresolved field
references, bad expressions) happen here, at definition time.

Example:
    >>> person = (
    ...     SchemaBuilder("Person")
    ...     .field("age", "integer", required=True,
    ...            rules=[when(lambda age: age < 0, "must be non-negative")])
    ...     .build()
    ... )
"""

from __future__ import annotations

import copy
import keyword
import logging
from dataclasses import dataclass, field as dc_field, make_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from recordcast.errors import SchemaDefinitionError, UnresolvedFieldError
from recordcast.settings import get_settings
from recordcast.types import FieldType, resolve_type

logger = logging.getLogger(__name__)

__all__ = [
    "Cardinality",
    "FieldSpec",
    "NullPolicy",
    "RuleClause",
    "Schema",
    "SchemaBuilder",
    "when",
]


class NullPolicy(Enum):
    """How an explicit null in the input is treated."""

    NULLIFY = "nullify"  # null is a value and replaces the default
    USE_DEFAULT = "use_default"  # null behaves exactly like an absent key


class Cardinality(Enum):
    """Embedding cardinality."""

    ONE = "one"
    MANY = "many"


@dataclass(frozen=True)
class FieldSpec:
    """One declared field."""

    name: str
    type: Optional[FieldType] = None
    default: Any = None
    null_policy: NullPolicy = NullPolicy.NULLIFY
    cardinality: Optional[Cardinality] = None
    schema: Optional["Schema"] = None

    @property
    def is_embed(self) -> bool:
        return self.schema is not None

    def default_value(self) -> Any:
        """Fresh copy of the default, so mutable defaults are never shared."""
        if self.cardinality == Cardinality.MANY and self.default is None:
            return []
        return copy.deepcopy(self.default)


@dataclass(frozen=True)
class RuleClause:
    """An "invalid when" clause: a truthy condition always yields an error.

    ``index`` is the 1-based position within the field's clause list and is
    assigned when the schema is built.
    """

    condition: Any
    message: Any
    index: int = 0


def when(condition: Any, message: Any) -> RuleClause:
    """Declare a clause that fails when ``condition`` is truthy."""
    return RuleClause(condition, message)


@dataclass(frozen=True, eq=False)
class Schema:
    """Immutable schema descriptor shared by all validations of a type."""

    name: str
    fields: Tuple[FieldSpec, ...]
    required: FrozenSet[str]
    embeds: FrozenSet[str]
    rules: Mapping[str, Tuple[RuleClause, ...]]
    record_type: Callable[..., Any]
    empty_strings_as_null: bool = True

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def defaults(self) -> Dict[str, Any]:
        """Base data for a fresh record: every field at its default."""
        return {f.name: f.default_value() for f in self.fields}

    def is_record(self, value: Any) -> bool:
        """Whether value is a typed instance of this schema's record type."""
        return isinstance(self.record_type, type) and isinstance(value, self.record_type)

    def __repr__(self) -> str:
        return f"<Schema {self.name} fields={self.field_names}>"


def _make_record_type(name: str, specs: Iterable[FieldSpec]) -> type:
    record_fields = [
        (spec.name, Any, dc_field(default=None))
        for spec in specs
    ]
    return make_dataclass(name, record_fields, frozen=True)


def _check_name(schema_name: str, name: str) -> None:
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        raise SchemaDefinitionError(
            f"Field name {name!r} must be a valid Python identifier",
            schema=schema_name,
        )


class SchemaBuilder:
    """Collects field declarations and builds an immutable Schema.

    Unknown types raise immediately; references between fields are checked
    by build().
    """

    def __init__(
        self,
        name: str,
        *,
        empty_strings_as_null: Optional[bool] = None,
        record_type: Optional[Callable[..., Any]] = None,
    ):
        if not name or not name.isidentifier():
            raise SchemaDefinitionError(f"Schema name {name!r} must be a valid identifier")
        self.name = name
        if empty_strings_as_null is None:
            empty_strings_as_null = get_settings().empty_strings_as_null
        self.empty_strings_as_null = empty_strings_as_null
        self.record_type = record_type
        self._fields: List[FieldSpec] = []
        self._required: List[str] = []
        self._rules: Dict[str, List[RuleClause]] = {}

    def _add(self, spec: FieldSpec, required: bool, rules: Optional[Iterable[RuleClause]]) -> "SchemaBuilder":
        _check_name(self.name, spec.name)
        if any(existing.name == spec.name for existing in self._fields):
            raise SchemaDefinitionError(
                f"Field '{spec.name}' is declared more than once",
                schema=self.name,
                field=spec.name,
            )
        self._fields.append(spec)
        if required:
            self._required.append(spec.name)
        for clause in rules or ():
            self.rule(spec.name, clause.condition, clause.message)
        return self

    def field(
        self,
        name: str,
        type: Any,
        *,
        default: Any = None,
        required: bool = False,
        rules: Optional[Iterable[RuleClause]] = None,
        null_policy: NullPolicy = NullPolicy.NULLIFY,
    ) -> "SchemaBuilder":
        """Declare a scalar, enum or collection field."""
        try:
            field_type = resolve_type(type)
        except SchemaDefinitionError as e:
            e.schema = e.schema or self.name
            e.field = e.field or name
            raise
        spec = FieldSpec(name=name, type=field_type, default=default, null_policy=null_policy)
        return self._add(spec, required, rules)

    def embeds_one(
        self,
        name: str,
        schema: Schema,
        *,
        required: bool = False,
        rules: Optional[Iterable[RuleClause]] = None,
        null_policy: NullPolicy = NullPolicy.NULLIFY,
    ) -> "SchemaBuilder":
        """Declare a field holding one nested record."""
        return self._embed(name, schema, Cardinality.ONE, required, rules, null_policy)

    def embeds_many(
        self,
        name: str,
        schema: Schema,
        *,
        required: bool = False,
        rules: Optional[Iterable[RuleClause]] = None,
        null_policy: NullPolicy = NullPolicy.NULLIFY,
    ) -> "SchemaBuilder":
        """Declare a field holding a list of nested records."""
        return self._embed(name, schema, Cardinality.MANY, required, rules, null_policy)

    def _embed(
        self,
        name: str,
        schema: Schema,
        cardinality: Cardinality,
        required: bool,
        rules: Optional[Iterable[RuleClause]],
        null_policy: NullPolicy,
    ) -> "SchemaBuilder":
        if not isinstance(schema, Schema):
            raise SchemaDefinitionError(
                f"Embedded field '{name}' needs a Schema, got {type(schema).__name__}",
                schema=self.name,
                field=name,
            )
        spec = FieldSpec(
            name=name,
            cardinality=cardinality,
            schema=schema,
            null_policy=null_policy,
        )
        return self._add(spec, required, rules)

    def require(self, *names: str) -> "SchemaBuilder":
        """Mark already-declared fields as required."""
        for name in names:
            if name not in self._required:
                self._required.append(name)
        return self

    def rule(self, name: str, condition: Any, message: Any) -> "SchemaBuilder":
        """Append a clause to a field's rule list."""
        self._rules.setdefault(name, []).append(RuleClause(condition, message))
        return self

    def build(self) -> Schema:
        """Check references and freeze the schema.

        Raises:
            UnresolvedFieldError: If required or rules name an unknown field
        """
        known = [f.name for f in self._fields]
        for name in list(self._required) + list(self._rules):
            if name not in known:
                raise UnresolvedFieldError(
                    f"'{name}' is referenced but not declared",
                    schema=self.name,
                    field=name,
                    known_fields=known,
                )

        rules = {
            name: tuple(
                RuleClause(clause.condition, clause.message, index)
                for index, clause in enumerate(clauses, start=1)
            )
            for name, clauses in self._rules.items()
        }

        fields = tuple(self._fields)
        record_type = self.record_type or _make_record_type(self.name, fields)

        schema = Schema(
            name=self.name,
            fields=fields,
            required=frozenset(self._required),
            embeds=frozenset(f.name for f in fields if f.is_embed),
            rules=MappingProxyType(rules),
            record_type=record_type,
            empty_strings_as_null=self.empty_strings_as_null,
        )
        logger.debug(
            "Built schema %s with %d fields, %d required, %d rule clauses",
            schema.name,
            len(fields),
            len(schema.required),
            sum(len(c) for c in rules.values()),
        )
        return schema
