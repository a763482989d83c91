"""recordcast: cast and validate untrusted records against schema descriptors.

Example:
    >>> from recordcast import SchemaBuilder, validate, when
    >>> person = (
    ...     SchemaBuilder("Person")
    ...     .field("age", "integer", required=True,
    ...            rules=[when(lambda age: age < 0, "must be non-negative")])
    ...     .build()
    ... )
    >>> result = validate(person, {"age": "-1"})
    >>> [e.message for e in result.errors]
    ['must be non-negative']
"""

from recordcast.batch import BatchReport, validate_frame, validate_many
from recordcast.engine import UnsupportedInput, normalize_input, validate
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
from recordcast.expressions import ClauseOutcome, Expr, Outcome, expr
from recordcast.loader import load_catalog, load_schema, load_schema_file
from recordcast.result import ErrorKind, FieldError, ValidationResult, traverse_errors
from recordcast.rules import apply_rules
from recordcast.schema import (
    Cardinality,
    FieldSpec,
    NullPolicy,
    RuleClause,
    Schema,
    SchemaBuilder,
    when,
)
from recordcast.settings import RecordcastSettings, get_settings, reset_settings
from recordcast.types import ArrayOf, CastResult, EnumOf, EnumType, FieldType, MapOf, resolve_type

__version__ = "1.0.0"

__all__ = [
    # Engine
    "validate",
    "normalize_input",
    "UnsupportedInput",
    "apply_rules",
    "validate_many",
    "validate_frame",
    "BatchReport",
    # Schema
    "Schema",
    "SchemaBuilder",
    "FieldSpec",
    "RuleClause",
    "NullPolicy",
    "Cardinality",
    "when",
    "expr",
    "Expr",
    "Outcome",
    "ClauseOutcome",
    # Types
    "FieldType",
    "CastResult",
    "ArrayOf",
    "MapOf",
    "EnumOf",
    "EnumType",
    "resolve_type",
    # Results
    "ValidationResult",
    "FieldError",
    "ErrorKind",
    "traverse_errors",
    # Documents and settings
    "load_schema",
    "load_schema_file",
    "load_catalog",
    "RecordcastSettings",
    "get_settings",
    "reset_settings",
    # Errors
    "RecordcastError",
    "SchemaDefinitionError",
    "UnknownTypeError",
    "UnresolvedFieldError",
    "SchemaCycleError",
    "ExpressionSyntaxError",
    "SchemaFileError",
    "InvalidRecordError",
]
