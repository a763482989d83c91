"""Field types and single-value casting.

Declared type tags are resolved to FieldType objects once, when a schema is
built. Casting a value never raises for incompatible input; it returns a
CastResult describing success or failure.

Example:
    >>> field_type = resolve_type("integer")
    >>> field_type.cast("42")
    CastResult(ok=True, value=42, message=None)
    >>> field_type.cast("4.2").ok
    False
"""

from __future__ import annotations

import collections.abc
import enum
import typing
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from recordcast.errors import UnknownTypeError

__all__ = [
    "CastResult",
    "FieldType",
    "ScalarType",
    "EnumType",
    "ArrayOf",
    "MapOf",
    "EnumOf",
    "SCALAR_KINDS",
    "resolve_type",
]

INVALID = "is invalid"


@dataclass(frozen=True)
class CastResult:
    """Outcome of casting one raw value."""

    ok: bool
    value: Any = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> "CastResult":
        return cls(True, value)

    @classmethod
    def failure(cls, message: str = INVALID) -> "CastResult":
        return cls(False, None, message)


class _Reject(Exception):
    """Raised inside a converter to reject a value."""


class FieldType:
    """Base class for declared field types."""

    name: str = "any"

    def cast(self, value: Any) -> CastResult:
        """Cast a raw value. None always casts to None."""
        if value is None:
            return CastResult.success(None)
        try:
            return CastResult.success(self._convert(value))
        except (_Reject, ValueError, TypeError, KeyError, ArithmeticError):
            return CastResult.failure()

    def _convert(self, value: Any) -> Any:
        return value

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldType) and repr(self) == repr(other)

    def __hash__(self) -> int:
        return hash(repr(self))


# ============================================
# Scalar converters
# ============================================


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    raise _Reject()


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise _Reject()
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # int() would accept "1_000"
        if text.lstrip("+-").isdigit():
            return int(text)
    raise _Reject()


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise _Reject()
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise _Reject()


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise _Reject()
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise _Reject()
    else:
        raise _Reject()
    if not result.is_finite():
        raise _Reject()
    return result


_TRUE_STRINGS = {"true", "1"}
_FALSE_STRINGS = {"false", "0"}


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise _Reject()


def _to_binary(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise _Reject()


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        raise _Reject()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip())
    if isinstance(value, Mapping):
        return date(int(value["year"]), int(value["month"]), int(value["day"]))
    raise _Reject()


def _to_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        return time.fromisoformat(value.strip())
    raise _Reject()


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    raise _Reject()


def _to_naive_datetime(value: Any) -> datetime:
    return _parse_datetime(value).replace(tzinfo=None)


def _to_utc_datetime(value: Any) -> datetime:
    parsed = _parse_datetime(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        return uuid.UUID(value.strip())
    raise _Reject()


def _to_map(value: Any) -> Dict[Any, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    raise _Reject()


class ScalarType(FieldType):
    """A primitive kind backed by a converter function."""

    def __init__(self, name: str, converter: typing.Callable[[Any], Any]):
        self.name = name
        self._converter = converter

    def _convert(self, value: Any) -> Any:
        return self._converter(value)


SCALAR_KINDS: Dict[str, ScalarType] = {
    "string": ScalarType("string", _to_string),
    "integer": ScalarType("integer", _to_integer),
    "float": ScalarType("float", _to_float),
    "decimal": ScalarType("decimal", _to_decimal),
    "boolean": ScalarType("boolean", _to_boolean),
    "binary": ScalarType("binary", _to_binary),
    "date": ScalarType("date", _to_date),
    "time": ScalarType("time", _to_time),
    "datetime": ScalarType("datetime", _to_naive_datetime),
    "utc_datetime": ScalarType("utc_datetime", _to_utc_datetime),
    "uuid": ScalarType("uuid", _to_uuid),
    "map": ScalarType("map", _to_map),
    "any": ScalarType("any", lambda value: value),
}

_ALIASES = {
    "id": "integer",
    "int": "integer",
    "str": "string",
    "bool": "boolean",
    "naive_datetime": "datetime",
    "bytes": "binary",
}

_PYTHON_TYPES: Dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "float",
    Decimal: "decimal",
    bool: "boolean",
    bytes: "binary",
    date: "date",
    time: "time",
    datetime: "datetime",
    uuid.UUID: "uuid",
    dict: "map",
    object: "any",
    Any: "any",
}


# ============================================
# Composite types
# ============================================


class EnumType(FieldType):
    """Enumeration backed by a Python Enum class or a fixed list of values."""

    def __init__(self, values: Sequence[Any], enum_class: Optional[Type[enum.Enum]] = None):
        if not values:
            raise UnknownTypeError("Enum types need at least one value", type_tag=values)
        self.values = tuple(values)
        self.enum_class = enum_class
        self.name = f"enum({enum_class.__name__})" if enum_class else f"enum{list(self.values)}"

    @classmethod
    def from_enum(cls, enum_class: Type[enum.Enum]) -> "EnumType":
        return cls(list(enum_class), enum_class=enum_class)

    def _convert(self, value: Any) -> Any:
        if self.enum_class is None:
            if value in self.values:
                return value
            raise _Reject()

        if isinstance(value, self.enum_class):
            return value
        if isinstance(value, enum.Enum):
            raise _Reject()
        for member in self.enum_class:
            if member.value == value:
                return member
        if isinstance(value, str) and value in self.enum_class.__members__:
            return self.enum_class[value]
        raise _Reject()


class ArrayOf(FieldType):
    """Homogeneous list of an inner type."""

    def __init__(self, inner: Any):
        self.inner = resolve_type(inner)
        self.name = f"array({self.inner.name})"

    def _convert(self, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            raise _Reject()
        items = []
        for item in value:
            result = self.inner.cast(item)
            if not result.ok:
                raise _Reject()
            items.append(result.value)
        return items


class MapOf(FieldType):
    """Mapping whose values are all cast to an inner type."""

    def __init__(self, inner: Any):
        self.inner = resolve_type(inner)
        self.name = f"map({self.inner.name})"

    def _convert(self, value: Any) -> Dict[Any, Any]:
        if not isinstance(value, Mapping):
            raise _Reject()
        items = {}
        for key, item in value.items():
            result = self.inner.cast(item)
            if not result.ok:
                raise _Reject()
            items[key] = result.value
        return items


def EnumOf(values: Sequence[Any]) -> EnumType:
    """Create an enum type from a fixed list of allowed values."""
    return EnumType(list(values))


# ============================================
# Resolution
# ============================================


def _resolve_document_tag(tag: Mapping[str, Any]) -> FieldType:
    if len(tag) != 1:
        raise UnknownTypeError("Type mappings must have exactly one key", type_tag=dict(tag))
    ((kind, inner),) = tag.items()
    if kind == "array":
        return ArrayOf(inner)
    if kind == "map":
        return MapOf(inner)
    if kind == "enum":
        if not isinstance(inner, (list, tuple)):
            raise UnknownTypeError("'enum' expects a list of values", type_tag=dict(tag))
        return EnumOf(inner)
    raise UnknownTypeError(f"Unknown composite type '{kind}'", type_tag=dict(tag))


def resolve_type(tag: Any) -> FieldType:
    """Resolve a declared type tag to a FieldType.

    Args:
        tag: Scalar kind name, Python class, Enum subclass, FieldType,
            typing generic (list[int], dict[str, int]) or a one-key mapping
            such as {"array": "integer"}

    Returns:
        FieldType instance

    Raises:
        UnknownTypeError: If the tag cannot be resolved
    """
    if isinstance(tag, FieldType):
        return tag

    if isinstance(tag, str):
        kind = _ALIASES.get(tag.lower(), tag.lower())
        if kind in SCALAR_KINDS:
            return SCALAR_KINDS[kind]
        valid = ", ".join(sorted(SCALAR_KINDS))
        raise UnknownTypeError(f"Unknown type '{tag}'. Valid kinds: {valid}", type_tag=tag)

    if isinstance(tag, Mapping):
        return _resolve_document_tag(tag)

    if isinstance(tag, type) and issubclass(tag, enum.Enum):
        return EnumType.from_enum(tag)

    origin = typing.get_origin(tag)
    if origin is not None:
        args = typing.get_args(tag)
        if origin in (list, tuple, collections.abc.Sequence) and args:
            return ArrayOf(args[0])
        if origin in (dict, collections.abc.Mapping) and len(args) == 2:
            return MapOf(args[1])
        raise UnknownTypeError(f"Unsupported generic type {tag!r}", type_tag=tag)

    try:
        if tag in _PYTHON_TYPES:
            return SCALAR_KINDS[_PYTHON_TYPES[tag]]
    except TypeError:
        pass

    raise UnknownTypeError(f"Unknown type {tag!r}", type_tag=tag)
