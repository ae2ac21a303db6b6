"""Condition evaluation for condition steps.

A condition is a tree of tagged nodes:

    {"and": [node, ...]}
    {"or": [node, ...]}
    {"operator": "equals", "field": "trigger.data.task.status", "value": "done"}

Leaves read ``field`` from the run context (a dotted path, or a literal key
of a flat context) and compare it to ``value``. Evaluation is pure: no I/O,
no logging, no mutation of its inputs. Unknown operators and malformed nodes
evaluate to False.
"""

import operator as op
from datetime import date, datetime, timezone
from typing import Any, Callable

from workflow.templating import get_path

_MISSING = object()


def _lookup(context: dict, field: str) -> Any:
    if field in context:
        return context[field]
    return get_path(context, field, _MISSING)


def _norm(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is _MISSING or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_empty(value: Any) -> bool:
    if value is _MISSING or value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _equals(actual: Any, expected: Any) -> bool:
    if actual is _MISSING:
        return False
    if actual is None or expected is None:
        return actual is None and expected is None
    left, right = _number(actual), _number(expected)
    if left is not None and right is not None:
        return left == right
    return _norm(actual) == _norm(expected)


def _contains(actual: Any, expected: Any) -> bool:
    if actual is _MISSING or actual is None:
        return False
    if isinstance(actual, (list, tuple, set)):
        return any(_equals(item, expected) for item in actual)
    if isinstance(actual, dict):
        return expected in actual
    return _norm(expected) in _norm(actual)


def _moment(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def _ordered(actual: Any, expected: Any) -> tuple[Any, Any] | None:
    """Comparable pair: numbers, then ISO dates, then plain strings."""
    left, right = _number(actual), _number(expected)
    if left is not None and right is not None:
        return left, right
    left_at, right_at = _moment(actual), _moment(expected)
    if left_at is not None and right_at is not None:
        return left_at, right_at
    if isinstance(actual, str) and isinstance(expected, str):
        return actual, expected
    return None


def _compare(check: Callable[[Any, Any], bool], or_equal: bool = False) -> Callable[[Any, Any], bool]:
    def _check(actual: Any, expected: Any) -> bool:
        pair = _ordered(actual, expected)
        if pair is not None and check(*pair):
            return True
        return or_equal and _equals(actual, expected)
    return _check


def _member(actual: Any, expected: Any) -> bool:
    if actual is _MISSING or not isinstance(expected, (list, tuple, set)):
        return False
    return any(_equals(actual, item) for item in expected)


def _starts_with(actual: Any, expected: Any) -> bool:
    if actual is _MISSING or actual is None or expected is None:
        return False
    return _norm(actual).startswith(_norm(expected))


def _ends_with(actual: Any, expected: Any) -> bool:
    if actual is _MISSING or actual is None or expected is None:
        return False
    return _norm(actual).endswith(_norm(expected))


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": _equals,
    "not_equals": lambda a, e: a is not _MISSING and not _equals(a, e),
    "contains": _contains,
    "not_contains": lambda a, e: not _contains(a, e),
    "starts_with": _starts_with,
    "ends_with": _ends_with,
    "gt": _compare(op.gt),
    "gte": _compare(op.ge, or_equal=True),
    "lt": _compare(op.lt),
    "lte": _compare(op.le, or_equal=True),
    "is_empty": lambda a, _e: _is_empty(a),
    "is_not_empty": lambda a, _e: not _is_empty(a),
    "has": lambda a, _e: a is not _MISSING and a is not None,
    "in": _member,
    "not_in": lambda a, e: isinstance(e, (list, tuple, set)) and not _member(a, e),
}

OPERATOR_ALIASES = {
    "notEquals": "not_equals",
    "notContains": "not_contains",
    "startsWith": "starts_with",
    "endsWith": "ends_with",
    "greaterThan": "gt",
    "greaterThanOrEqual": "gte",
    "lessThan": "lt",
    "lessThanOrEqual": "lte",
    "isEmpty": "is_empty",
    "isNotEmpty": "is_not_empty",
    "notIn": "not_in",
}

SUPPORTED_OPERATORS = frozenset(_OPERATORS) | frozenset(OPERATOR_ALIASES)


def canonical_operator(operator: Any) -> str | None:
    """Map an operator tag (either spelling) to its canonical name, or None."""
    if not isinstance(operator, str):
        return None
    name = OPERATOR_ALIASES.get(operator, operator)
    return name if name in _OPERATORS else None


def evaluate_condition(node: Any, context: dict) -> bool:
    """Evaluate a condition tree against ``context``.

    Empty ``and`` is True, empty ``or`` is False.
    """
    if not isinstance(node, dict):
        return False

    if "and" in node:
        children = node["and"]
        return isinstance(children, list) and all(
            evaluate_condition(child, context) for child in children
        )
    if "or" in node:
        children = node["or"]
        return isinstance(children, list) and any(
            evaluate_condition(child, context) for child in children
        )

    operator = canonical_operator(node.get("operator"))
    field = node.get("field")
    if operator is None or not isinstance(field, str) or not field:
        return False

    return _OPERATORS[operator](_lookup(context, field), node.get("value"))


def validate_condition(node: Any, path: str = "condition") -> list[str]:
    """Return human-readable problems with a condition tree (empty when valid)."""
    if not isinstance(node, dict):
        return [f"{path}: must be an object"]

    errors: list[str] = []
    for combinator in ("and", "or"):
        if combinator in node:
            children = node[combinator]
            if not isinstance(children, list):
                return [f"{path}.{combinator}: must be a list"]
            for index, child in enumerate(children):
                errors.extend(validate_condition(child, f"{path}.{combinator}[{index}]"))
            return errors

    if canonical_operator(node.get("operator")) is None:
        errors.append(f"{path}: unknown operator {node.get('operator')!r}")
    if not isinstance(node.get("field"), str) or not node.get("field"):
        errors.append(f"{path}: field is required")
    return errors
