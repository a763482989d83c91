"""Structured exception hierarchy for recordcast.

Only schema-definition problems and explicit materialisation of an invalid
result raise. Invalid input data never raises; it is recorded on the
ValidationResult instead.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from recordcast.result import ValidationResult

__all__ = [
    "RecordcastError",
    "SchemaDefinitionError",
    "UnknownTypeError",
    "UnresolvedFieldError",
    "SchemaCycleError",
    "ExpressionSyntaxError",
    "SchemaFileError",
    "InvalidRecordError",
]


class RecordcastError(Exception):
    """Base exception for all recordcast errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        schema: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.schema = schema
        self.field = field
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if schema or field:
            context = f"{schema or '?'}.{field}" if field else schema
            parts.insert(0, f"[{context}]")

        if self.details:
            detail_lines = [f"  {k}: {v}" for k, v in self.details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        self.message = message
        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "schema": self.schema,
            "field": self.field,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class SchemaDefinitionError(RecordcastError):
    """A schema descriptor is malformed.

    Raised while the descriptor is being built, never from validate().
    """


class UnknownTypeError(SchemaDefinitionError):
    """A field declares a type tag that cannot be resolved."""

    def __init__(self, message: str, *, type_tag: Any = None, **kwargs: Any) -> None:
        self.type_tag = type_tag

        details = kwargs.pop("details", {})
        if type_tag is not None:
            details["type"] = repr(type_tag)

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Use a scalar kind such as 'string' or 'integer', an Enum class, "
                "ArrayOf(...), MapOf(...) or EnumOf([...])"
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class UnresolvedFieldError(SchemaDefinitionError):
    """Required or rule declarations reference a field that does not exist."""

    def __init__(
        self,
        message: str,
        *,
        known_fields: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.known_fields = known_fields or []

        details = kwargs.pop("details", {})
        if known_fields:
            details["known_fields"] = ", ".join(known_fields)

        super().__init__(message, details=details, **kwargs)


class SchemaCycleError(SchemaDefinitionError):
    """Embedded schemas form a cycle."""

    def __init__(self, message: str, *, path: Optional[List[str]] = None, **kwargs: Any) -> None:
        self.path = path or []

        details = kwargs.pop("details", {})
        if path:
            details["path"] = " -> ".join(path)

        super().__init__(message, details=details, **kwargs)


class ExpressionSyntaxError(SchemaDefinitionError):
    """A rule expression source string does not parse or uses disallowed syntax."""

    def __init__(self, message: str, *, source: Optional[str] = None, **kwargs: Any) -> None:
        self.source = source

        details = kwargs.pop("details", {})
        if source is not None:
            details["source"] = source

        super().__init__(message, details=details, **kwargs)


class SchemaFileError(RecordcastError):
    """Error in a YAML/dict schema document."""

    def __init__(self, message: str, *, path: Optional[str] = None, **kwargs: Any) -> None:
        self.path = path

        details = kwargs.pop("details", {})
        if path:
            details["path"] = path

        super().__init__(message, details=details, **kwargs)


class InvalidRecordError(RecordcastError):
    """Raised when materialising a record from an invalid result."""

    def __init__(self, message: str, *, result: Optional["ValidationResult"] = None, **kwargs: Any) -> None:
        self.result = result

        details = kwargs.pop("details", {})
        if result is not None:
            details["error_count"] = result.error_count
            kwargs.setdefault("schema", result.schema.name)

        super().__init__(message, details=details, **kwargs)
