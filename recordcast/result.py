"""Validation results and structured field errors.

A ValidationResult is created fresh by every validate() call and owned by
that call's caller. Errors are append-only and keep their insertion order:
field declaration order, then clause index within a field. Errors of
embedded records stay on the nested result; they are never flattened into
the parent's list, but they do make the parent invalid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING

from recordcast.errors import InvalidRecordError

if TYPE_CHECKING:
    from recordcast.schema import Schema

__all__ = [
    "ErrorKind",
    "FieldError",
    "ValidationResult",
    "traverse_errors",
]


class ErrorKind(Enum):
    """Category of a recorded error."""

    CAST = "cast"
    REQUIRED = "required"
    RULE = "rule"
    RULE_EVALUATION = "rule-evaluation"


DEFAULT_MESSAGES = {
    ErrorKind.CAST: "is invalid",
    ErrorKind.REQUIRED: "can't be blank",
}


@dataclass(frozen=True)
class FieldError:
    """A single validation error.

    ``field`` is None for errors about the whole record.
    """

    field: Optional[str]
    message: str
    kind: ErrorKind
    clause_index: Optional[int] = None
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "field": self.field,
            "message": self.message,
            "kind": self.kind.value,
        }
        if self.clause_index is not None:
            result["clause_index"] = self.clause_index
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        where = self.field or "<record>"
        suffix = f" (clause #{self.clause_index})" if self.clause_index else ""
        return f"{where}: {self.message}{suffix}"


def _is_result(value: Any) -> bool:
    return isinstance(value, ValidationResult)


@dataclass
class ValidationResult:
    """Per-call artifact holding cast changes and accumulated errors.

    Attributes:
        schema: Schema the input was validated against
        params: Normalized raw input (reused on re-validation)
        data: Base record values the changes apply to
        changes: Field name -> newly cast value; embeds map to nested
            ValidationResults (or lists of them for embeds_many)
        errors: Ordered errors scoped to this record
        required: Whether the parent declared this record as required
    """

    schema: "Schema"
    params: Mapping[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)
    changes: Dict[str, Any] = field(default_factory=dict)
    errors: List[FieldError] = field(default_factory=list)
    required: bool = False

    # ============================================
    # Error accumulation
    # ============================================

    def add_error(
        self,
        field_name: Optional[str],
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        clause_index: Optional[int] = None,
        **details: Any,
    ) -> FieldError:
        """Append an error and return it."""
        error = FieldError(
            field=field_name,
            message=message if message is not None else DEFAULT_MESSAGES.get(kind, "is invalid"),
            kind=kind,
            clause_index=clause_index,
            details=details,
        )
        self.errors.append(error)
        return error

    def errors_for(self, field_name: Optional[str]) -> List[FieldError]:
        """Errors recorded for one field on this record."""
        return [e for e in self.errors if e.field == field_name]

    @property
    def error_count(self) -> int:
        """Errors on this record plus all nested records."""
        return len(self.errors) + sum(n.error_count for n in self.nested_results())

    # ============================================
    # Validity
    # ============================================

    def nested_results(self) -> List["ValidationResult"]:
        """Nested results stored under embedded fields, in field order."""
        nested: List[ValidationResult] = []
        for name in self.schema.field_names:
            if name not in self.schema.embeds or name not in self.changes:
                continue
            value = self.changes[name]
            if _is_result(value):
                nested.append(value)
            elif isinstance(value, list):
                nested.extend(item for item in value if _is_result(item))
        return nested

    @property
    def valid(self) -> bool:
        """No errors here and every embedded result is valid."""
        return not self.errors and all(n.valid for n in self.nested_results())

    @property
    def invalid(self) -> bool:
        """Negation of valid."""
        return not self.valid

    # ============================================
    # Field access
    # ============================================

    def get_change(self, name: str, default: Any = None) -> Any:
        """Newly cast value of a field, ignoring the base data."""
        return self.changes.get(name, default)

    def fetch_field(self, name: str, default: Any = None) -> Any:
        """Current value of a field: the change if any, else the base data."""
        if name in self.changes:
            return self.changes[name]
        return self.data.get(name, default)

    def change_values(self) -> Dict[str, Any]:
        """Changes with nested results replaced by their own change maps."""
        return {name: _plain(value) for name, value in self.changes.items()}

    # ============================================
    # Materialization
    # ============================================

    def apply(self) -> Any:
        """Build a typed record from base data plus changes.

        Raises:
            InvalidRecordError: If the result is not valid
        """
        if not self.valid:
            raise InvalidRecordError(
                f"Cannot build {self.schema.name} from an invalid result",
                result=self,
                suggestion="Inspect result.errors or traverse_errors(result)",
            )
        return self._materialize()

    def _materialize(self) -> Any:
        values: Dict[str, Any] = {}
        for spec in self.schema.fields:
            value = self.fetch_field(spec.name)
            if _is_result(value):
                value = value._materialize()
            elif isinstance(value, list) and spec.is_embed:
                value = [item._materialize() if _is_result(item) else item for item in value]
            values[spec.name] = value
        return self.schema.record_type(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "schema": self.schema.name,
            "valid": self.valid,
            "changes": {name: _serializable(value) for name, value in self.changes.items()},
            "errors": [e.to_dict() for e in self.errors],
        }

    def __repr__(self) -> str:
        status = "valid" if self.valid else f"invalid, {self.error_count} error(s)"
        return f"<ValidationResult {self.schema.name} {status} changes={sorted(self.changes)}>"


def _plain(value: Any) -> Any:
    if _is_result(value):
        return value.change_values()
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _serializable(value: Any) -> Any:
    if _is_result(value):
        return value.to_dict()
    if isinstance(value, list):
        return [_serializable(item) for item in value]
    return value


def traverse_errors(
    result: ValidationResult,
    formatter: Optional[Callable[[FieldError], Any]] = None,
) -> Dict[str, Any]:
    """Collect errors into a nested mapping keyed by field name.

    Scalar fields map to a list of formatted errors; embeds_one fields map to
    the nested mapping; embeds_many fields map to a list with one mapping per
    element. Whole-record errors are collected under the ``"__record__"`` key.

    Example:
        >>> traverse_errors(result)
        {'age': ['must be non-negative'], 'address': {'city': ["can't be blank"]}}
    """
    fmt = formatter or (lambda error: error.message)
    collected: Dict[str, Any] = {}

    for error in result.errors:
        key = error.field if error.field is not None else "__record__"
        collected.setdefault(key, []).append(fmt(error))

    for name in result.schema.field_names:
        if name not in result.schema.embeds or name not in result.changes:
            continue
        value = result.changes[name]
        if _is_result(value):
            nested = traverse_errors(value, formatter)
            if nested:
                _merge(collected, name, nested)
        elif isinstance(value, list):
            items = [traverse_errors(item, formatter) if _is_result(item) else {} for item in value]
            if any(items):
                _merge(collected, name, items)

    return collected


def _merge(collected: Dict[str, Any], name: str, nested: Any) -> None:
    # A field can carry both its own errors and nested ones
    if name in collected:
        collected[name] = {"__errors__": collected[name], "__nested__": nested}
    else:
        collected[name] = nested
