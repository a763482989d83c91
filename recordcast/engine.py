"""Structural casting: the validate() entry point.

validate() casts every declared field in declaration order, recurses into
embedded records, checks required fields and finally runs the rule clauses.
It never raises for bad input; everything is recorded on the returned
ValidationResult.

Usage:
```python
from recordcast import SchemaBuilder, validate, when

person = (
    SchemaBuilder("Person")
    .field("age", "integer", required=True,
           rules=[when(lambda age: age < 0, "must be non-negative")])
    .build()
)

result = validate(person, {"age": "5"})
if result.valid:
    record = result.apply()
```
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel

from recordcast.result import ErrorKind, ValidationResult
from recordcast.rules import apply_rules
from recordcast.schema import Cardinality, FieldSpec, NullPolicy, Schema

logger = logging.getLogger(__name__)

__all__ = ["validate", "normalize_input", "UnsupportedInput"]

Bindings = Iterable[Tuple[str, Any]]


class UnsupportedInput(TypeError):
    """Raw input is not one of the accepted record shapes."""


# ============================================
# Input normalization
# ============================================


def _from_result(schema: Schema, raw: ValidationResult) -> Dict[str, Any]:
    return dict(raw.params)


def _from_dataclass(schema: Schema, raw: Any) -> Dict[str, Any]:
    # Shallow on purpose: nested records are normalized by their own pass
    return {f.name: getattr(raw, f.name) for f in dataclasses.fields(raw)}


def _from_model(schema: Schema, raw: BaseModel) -> Dict[str, Any]:
    return raw.model_dump()


def _from_mapping(schema: Schema, raw: Mapping[Any, Any]) -> Dict[str, Any]:
    return {str(key): value for key, value in raw.items()}


_NORMALIZERS: List[Tuple[Callable[[Any], bool], Callable[[Schema, Any], Dict[str, Any]]]] = [
    (lambda raw: isinstance(raw, ValidationResult), _from_result),
    (lambda raw: dataclasses.is_dataclass(raw) and not isinstance(raw, type), _from_dataclass),
    (lambda raw: isinstance(raw, BaseModel), _from_model),
    (lambda raw: isinstance(raw, Mapping), _from_mapping),
]


def _normalizer_for(raw: Any) -> Optional[Callable[[Schema, Any], Dict[str, Any]]]:
    for matches, normalizer in _NORMALIZERS:
        if matches(raw):
            return normalizer
    return None


def normalize_input(schema: Schema, raw: Any) -> Dict[str, Any]:
    """Turn any accepted input shape into a plain field map.

    Accepted shapes: a mapping, a prior ValidationResult (its recorded
    params are reused), a dataclass record (such as the schema's own
    record type) or a pydantic model. None is an empty mapping.

    Raises:
        UnsupportedInput: For any other shape
    """
    if raw is None:
        return {}
    normalizer = _normalizer_for(raw)
    if normalizer is None:
        raise UnsupportedInput(f"Cannot validate {type(raw).__name__} as {schema.name}")
    return normalizer(schema, raw)


def _base_data(schema: Schema, data: Any) -> Dict[str, Any]:
    base = schema.defaults()
    if data is not None:
        existing = normalize_input(schema, data)
        base.update((name, value) for name, value in existing.items() if name in base)
    return base


# ============================================
# Casting
# ============================================


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _lookup(schema: Schema, spec: FieldSpec, params: Mapping[str, Any]) -> Tuple[bool, Any]:
    """Whether the field is present in the input, and its raw value."""
    if spec.name not in params:
        return False, None
    value = params[spec.name]
    if schema.empty_strings_as_null and isinstance(value, str) and not value.strip():
        value = None
    if value is None and spec.null_policy is NullPolicy.USE_DEFAULT:
        return False, None
    return True, value


def _cast_scalar(result: ValidationResult, schema: Schema, spec: FieldSpec) -> None:
    present, raw_value = _lookup(schema, spec, result.params)
    if not present:
        return

    cast = spec.type.cast(raw_value)
    if not cast.ok:
        result.add_error(spec.name, ErrorKind.CAST, cast.message, type=spec.type.name)
        return

    # Unchanged values are not changes; this keeps re-validation idempotent
    if cast.value != result.data.get(spec.name):
        result.changes[spec.name] = cast.value


def _cast_embed(
    result: ValidationResult,
    schema: Schema,
    spec: FieldSpec,
    bindings: Bindings,
) -> None:
    present, raw_value = _lookup(schema, spec, result.params)
    required = spec.name in schema.required
    existing = result.data.get(spec.name)

    if not present:
        if required and (existing is None or existing == []):
            result.add_error(spec.name, ErrorKind.REQUIRED)
        return

    if raw_value is None:
        if required:
            result.add_error(spec.name, ErrorKind.REQUIRED)
        empty = [] if spec.cardinality is Cardinality.MANY else None
        if existing != empty:
            result.changes[spec.name] = empty
        return

    if spec.cardinality is Cardinality.ONE:
        if _normalizer_for(raw_value) is None:
            result.add_error(spec.name, ErrorKind.CAST, type=spec.schema.name)
            return
        base = existing if _normalizer_for(existing) is not None else None
        result.changes[spec.name] = validate(
            spec.schema, raw_value, bindings, data=base, required=required
        )
        return

    if not isinstance(raw_value, (list, tuple)) or any(
        _normalizer_for(item) is None for item in raw_value
    ):
        result.add_error(spec.name, ErrorKind.CAST, type=f"list({spec.schema.name})")
        return

    items = [validate(spec.schema, item, bindings, required=required) for item in raw_value]
    if required and not items:
        result.add_error(spec.name, ErrorKind.REQUIRED)
    result.changes[spec.name] = items


def _cast_fields(result: ValidationResult, schema: Schema, bindings: Bindings) -> None:
    for spec in schema.fields:
        try:
            if spec.is_embed:
                _cast_embed(result, schema, spec, bindings)
            else:
                _cast_scalar(result, schema, spec)
        except Exception as e:
            logger.warning(
                "Unexpected error casting %s.%s: %s",
                schema.name,
                spec.name,
                e,
                exc_info=True,
            )
            result.changes.pop(spec.name, None)
            result.add_error(spec.name, ErrorKind.CAST, exception=type(e).__name__)


def _validate_required(result: ValidationResult, schema: Schema) -> None:
    """Required check for scalar fields; embeds are checked while casting."""
    for spec in schema.fields:
        if spec.is_embed or spec.name not in schema.required:
            continue
        # A field that failed to cast already has its error
        if result.errors_for(spec.name):
            continue
        if _is_blank(result.fetch_field(spec.name)):
            result.add_error(spec.name, ErrorKind.REQUIRED)


# ============================================
# Entry point
# ============================================


def _rejected(
    schema: Schema,
    error: UnsupportedInput,
    base: Dict[str, Any],
    required: bool,
    **details: Any,
) -> ValidationResult:
    logger.debug("Rejected input for %s: %s", schema.name, error)
    result = ValidationResult(schema, params={}, data=base, required=required)
    result.add_error(None, ErrorKind.CAST, **details)
    return result


def validate(
    schema: Schema,
    raw: Any = None,
    bindings: Optional[Bindings] = (),
    *,
    data: Any = None,
    required: bool = False,
) -> ValidationResult:
    """Validate raw input against a schema.

    Args:
        schema: Schema descriptor
        raw: Mapping, prior ValidationResult, dataclass record or pydantic model
        bindings: External name/value pairs (or a mapping, or None) visible
            to rule clauses; values cast in this pass take precedence
        data: Existing record the input is applied to; defaults are used
            for fields it does not carry. An unsupported shape is recorded
            as a whole-record cast error, like an unsupported raw input
        required: Whether a parent declared this record as required

    Returns:
        ValidationResult with changes and errors; never raises for bad input
    """
    external = list(bindings.items() if isinstance(bindings, Mapping) else bindings or ())
    try:
        base = _base_data(schema, data)
    except UnsupportedInput as e:
        return _rejected(schema, e, schema.defaults(), required, data_type=type(data).__name__)

    try:
        params = normalize_input(schema, raw)
    except UnsupportedInput as e:
        return _rejected(schema, e, base, required, input_type=type(raw).__name__)

    result = ValidationResult(schema, params=params, data=base, required=required)

    _cast_fields(result, schema, external)
    _validate_required(result, schema)
    apply_rules(result, schema, external)

    logger.debug(
        "Validated %s: %d change(s), %d error(s)",
        schema.name,
        len(result.changes),
        len(result.errors),
    )
    return result
