"""Rule clause evaluation.

Fields are processed in declaration order and each field's binding
environment is taken when that field's clauses start, so a clause on a
later field sees the values cast earlier in the same pass, including values
that equal the record's existing ones. Clauses of one field run in index
order with no early exit; one clause failing to evaluate never stops the
others.

A one-argument condition or message receives the field's current value (the
cast change, else the existing record value). Such a condition is skipped
while that value is None, so a missing required field reports only its
required error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from recordcast.expressions import (
    MISSING,
    ClauseOutcome,
    Outcome,
    evaluate_condition,
    evaluate_message,
)
from recordcast.result import ErrorKind, ValidationResult
from recordcast.schema import RuleClause, Schema

logger = logging.getLogger(__name__)

__all__ = ["apply_rules", "build_bindings", "evaluate_clause"]

Bindings = Iterable[Tuple[str, Any]]


def build_bindings(result: ValidationResult, bindings: Optional[Bindings] = ()) -> Dict[str, Any]:
    """Binding environment for one field.

    Layers, later ones winning on a name clash: external context, the
    record's existing values for fields this pass did not change, then the
    changes. A field with no existing value and no change is left unbound so
    it never hides a same-named external binding.
    """
    items = bindings.items() if isinstance(bindings, Mapping) else bindings or ()
    env: Dict[str, Any] = dict(items)
    env.update(
        (name, value)
        for name, value in result.data.items()
        if name not in result.changes and value is not None
    )
    env.update(result.change_values())
    return env


def evaluate_clause(
    clause: RuleClause,
    env: Mapping[str, Any],
    field_value: Any = MISSING,
) -> ClauseOutcome:
    """Evaluate one clause without raising.

    Returns:
        ClauseOutcome: passed when the condition is falsy, failed with the
        evaluated message when truthy, errored when the condition or the
        message could not be evaluated
    """
    try:
        invalid = bool(evaluate_condition(clause.condition, env, field_value))
    except Exception as e:
        return ClauseOutcome.errored(f"condition raised {type(e).__name__}: {e}")

    if not invalid:
        return ClauseOutcome.passed()

    try:
        message = evaluate_message(clause.message, env, field_value)
    except Exception as e:
        return ClauseOutcome.errored(f"message raised {type(e).__name__}: {e}")

    return ClauseOutcome.failed(message)


def apply_rules(
    result: ValidationResult,
    schema: Schema,
    bindings: Optional[Bindings] = (),
) -> ValidationResult:
    """Evaluate every field's rule clauses and extend ``result.errors``.

    Args:
        result: In-progress result whose changes are already cast
        schema: Schema holding the clauses
        bindings: External name/value pairs visible to every clause

    Returns:
        The same result, with rule errors appended
    """
    external = list(bindings.items() if isinstance(bindings, Mapping) else bindings or ())

    for spec in schema.fields:
        clauses = schema.rules.get(spec.name)
        if not clauses:
            continue

        env = build_bindings(result, external)
        current = result.fetch_field(spec.name)
        # Embeds are passed as their plain change maps, like in the environment
        if spec.name in result.changes:
            current = env[spec.name]
        field_value = MISSING if current is None else current

        for clause in clauses:
            outcome = evaluate_clause(clause, env, field_value)

            if outcome.outcome is Outcome.FAILED:
                result.add_error(
                    spec.name,
                    ErrorKind.RULE,
                    outcome.message,
                    clause_index=clause.index,
                )
            elif outcome.outcome is Outcome.ERRORED:
                logger.warning(
                    "Could not evaluate clause #%d of %s.%s: %s",
                    clause.index,
                    schema.name,
                    spec.name,
                    outcome.reason,
                )
                result.add_error(
                    spec.name,
                    ErrorKind.RULE_EVALUATION,
                    f"could not evaluate clause #{clause.index}",
                    clause_index=clause.index,
                    reason=outcome.reason,
                )

    return result
