"""Deferred condition and message expressions for rule clauses.

Expressions are built once, when a schema is declared. At validation time
they are only evaluated against a binding environment; source strings are
parsed and checked at declaration and never re-parsed per call.

A clause condition can be:
    - a literal value (``True``, ``None``, ``"x"``)
    - a plain callable, invoked with no arguments or with the field's value
    - an ``Expr`` evaluated against the bindings, whose result may again be
      one of the above

Source strings are not handed to ``eval``. They are parsed with ``ast`` and
only a small expression language is accepted: names from the bindings,
literals, arithmetic, comparisons, ``and``/``or``/``not``, conditional
expressions, subscripts, f-strings and calls to the functions in
``SAFE_FUNCTIONS``. Attribute access, comprehensions, lambdas and any other
syntax are rejected when the expression is built.

Example:
    >>> expr("age < minimum").evaluate({"age": 3, "minimum": 18})
    True
    >>> expr(lambda env: env["age"] * 2).evaluate({"age": 3})
    6
"""

from __future__ import annotations

import ast
import inspect
import operator
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Union

from recordcast.errors import ExpressionSyntaxError

__all__ = [
    "Expr",
    "expr",
    "Outcome",
    "ClauseOutcome",
    "MISSING",
    "SAFE_FUNCTIONS",
    "arity",
    "evaluate_condition",
    "evaluate_message",
]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

SAFE_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "float": float,
    "int": int,
    "len": len,
    "max": max,
    "min": min,
    "round": round,
    "sorted": sorted,
    "str": str,
    "sum": sum,
}

# ============================================
# Source expression language
# ============================================

_COMPARE_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda x, y: x in y,
    ast.NotIn: lambda x, y: x not in y,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Compare,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.UnaryOp,
    ast.BinOp,
    ast.IfExp,
    ast.Subscript,
    ast.Slice,
    ast.Tuple,
    ast.List,
    ast.Set,
    ast.Dict,
    ast.Call,
    ast.JoinedStr,
    ast.FormattedValue,
) + tuple(_COMPARE_OPS) + tuple(_BINARY_OPS) + tuple(_UNARY_OPS)


def _check_tree(tree: ast.Expression, source: str) -> None:
    """Reject any syntax outside the expression language."""

    def reject(reason: str) -> None:
        raise ExpressionSyntaxError(f"Rule expression not allowed: {reason}", source=source)

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            reject(f"{type(node).__name__} is not supported")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            reject(f"name '{node.id}' is reserved")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
                reject(f"only calls to {', '.join(sorted(SAFE_FUNCTIONS))} are allowed")
            if node.keywords:
                reject("keyword arguments are not supported")
        if isinstance(node, ast.Dict) and any(key is None for key in node.keys):
            reject("dict unpacking is not supported")


def _eval_node(node: ast.AST, env: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id not in env:
            raise NameError(f"name '{node.id}' is not defined")
        return env[node.id]

    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval_node(comparator, env)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.BoolOp):
        # Short-circuits and returns the deciding operand, like Python
        value: Any = None
        for operand in node.values:
            value = _eval_node(operand, env)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand, env))

    if isinstance(node, ast.BinOp):
        return _BINARY_OPS[type(node.op)](_eval_node(node.left, env), _eval_node(node.right, env))

    if isinstance(node, ast.IfExp):
        if _eval_node(node.test, env):
            return _eval_node(node.body, env)
        return _eval_node(node.orelse, env)

    if isinstance(node, ast.Subscript):
        return _eval_node(node.value, env)[_eval_node(node.slice, env)]

    if isinstance(node, ast.Slice):
        return slice(
            _eval_node(node.lower, env) if node.lower else None,
            _eval_node(node.upper, env) if node.upper else None,
            _eval_node(node.step, env) if node.step else None,
        )

    if isinstance(node, ast.Tuple):
        return tuple(_eval_node(item, env) for item in node.elts)
    if isinstance(node, ast.List):
        return [_eval_node(item, env) for item in node.elts]
    if isinstance(node, ast.Set):
        return {_eval_node(item, env) for item in node.elts}
    if isinstance(node, ast.Dict):
        return {
            _eval_node(key, env): _eval_node(value, env)
            for key, value in zip(node.keys, node.values)
        }

    if isinstance(node, ast.Call):
        fn = SAFE_FUNCTIONS[node.func.id]  # type: ignore[attr-defined]
        return fn(*(_eval_node(arg, env) for arg in node.args))

    if isinstance(node, ast.JoinedStr):
        return "".join(str(_eval_node(part, env)) for part in node.values)

    if isinstance(node, ast.FormattedValue):
        value = _eval_node(node.value, env)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion == ord("s"):
            value = str(value)
        elif node.conversion == ord("a"):
            value = ascii(value)
        spec = _eval_node(node.format_spec, env) if node.format_spec else ""
        return format(value, spec)

    raise ValueError(f"Unsupported expression node: {type(node).__name__}")


class Expr:
    """Expression evaluated against a binding environment.

    Wraps either a callable that receives the environment mapping or a
    source string in the restricted expression language, parsed and
    checked at construction.
    """

    __slots__ = ("source", "_fn", "_tree")

    def __init__(self, body: Union[str, Callable[[Mapping[str, Any]], Any]]):
        self.source: Optional[str] = None
        self._fn: Optional[Callable[[Mapping[str, Any]], Any]] = None
        self._tree: Optional[ast.Expression] = None

        if isinstance(body, str):
            self.source = body
            try:
                tree = ast.parse(body.strip(), "<rule expression>", mode="eval")
            except SyntaxError as e:
                raise ExpressionSyntaxError(
                    f"Rule expression does not compile: {e.msg}",
                    source=body,
                ) from e
            _check_tree(tree, body)
            self._tree = tree
        elif callable(body):
            self._fn = body
        else:
            raise TypeError(f"Expr expects a source string or callable, got {type(body).__name__}")

    def evaluate(self, bindings: Mapping[str, Any]) -> Any:
        """Evaluate in the given environment. Errors propagate to the caller."""
        env = MappingProxyType(dict(bindings))
        if self._tree is not None:
            return _eval_node(self._tree.body, env)
        return self._fn(env)

    def __repr__(self) -> str:
        if self.source is not None:
            return f"Expr({self.source!r})"
        return f"Expr({getattr(self._fn, '__name__', self._fn)!r})"


def expr(body: Union[str, Callable[[Mapping[str, Any]], Any]]) -> Expr:
    """Build an Expr from a source string or an environment callable."""
    if isinstance(body, Expr):
        return body
    return Expr(body)


class Outcome(Enum):
    """Result category of evaluating one clause."""

    PASSED = "passed"  # condition falsy
    FAILED = "failed"  # condition truthy, message produced
    ERRORED = "errored"  # condition or message could not be evaluated


@dataclass(frozen=True)
class ClauseOutcome:
    """Explicit result of evaluating a rule clause."""

    outcome: Outcome
    message: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def passed(cls) -> "ClauseOutcome":
        return cls(Outcome.PASSED)

    @classmethod
    def failed(cls, message: Any) -> "ClauseOutcome":
        return cls(Outcome.FAILED, message=message)

    @classmethod
    def errored(cls, reason: str) -> "ClauseOutcome":
        return cls(Outcome.ERRORED, reason=reason)


def arity(fn: Callable[..., Any]) -> Optional[int]:
    """Number of required positional parameters, or None if unknowable.

    Callables taking *args report None so they are never guessed at.
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return None

    required = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return None
        if param.default is not param.empty:
            continue
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            required += 1
        elif param.kind == param.KEYWORD_ONLY:
            return None
    return required


def _resolve(value: Any, bindings: Mapping[str, Any]) -> Any:
    if isinstance(value, Expr):
        return value.evaluate(bindings)
    return value


def _invoke(fn: Callable[..., Any], field_value: Any, *, skip_missing: bool) -> Any:
    n = arity(fn)
    if n == 0:
        return fn()
    if n == 1:
        if field_value is MISSING:
            return None if skip_missing else fn(None)
        return fn(field_value)
    raise TypeError(
        "Functions in rule clauses must take no arguments or exactly one "
        f"(the field value); got arity {n if n is not None else 'unknown'}"
    )


def evaluate_condition(
    condition: Any,
    bindings: Mapping[str, Any],
    field_value: Any = MISSING,
) -> Any:
    """Evaluate a clause condition to a plain value.

    Args:
        condition: Literal, callable, or Expr
        bindings: Binding environment for this field
        field_value: The field's current cast value, or MISSING

    Returns:
        The condition value (truthiness decides the clause). A one-argument
        callable is not applicable while the field has no value and
        yields None.

    Raises:
        Exception: Whatever the expression raised
        TypeError: If a callable has an unsupported arity
    """
    value = _resolve(condition, bindings)
    if not callable(value):
        return value
    return _invoke(value, field_value, skip_missing=True)


def evaluate_message(
    message: Any,
    bindings: Mapping[str, Any],
    field_value: Any = MISSING,
) -> str:
    """Evaluate a clause message to error text.

    Callables are dispatched like conditions; a one-argument message gets
    the field value, or None when the field has none.
    """
    value = _resolve(message, bindings)
    if callable(value):
        value = _invoke(value, field_value, skip_missing=False)
    return str(value)
