"""
Condition Evaluation
=====================

Pure evaluation of trigger condition sets and time conditions against
a ticket's fields.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from automation.domain.entities import (
    AdvancedConditions,
    ChangeContext,
    Condition,
    ConditionOperator,
    ConditionSet,
    SimpleConditions,
    TimeCondition,
    TIME_REFERENCE_FIELDS,
    VALID_CONDITION_OPERATORS,
)

PREVIOUS_PREFIX = "previous."
EQUALS_TOLERANCE_MINUTES = 5


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _same(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    # JSON conditions often carry ids as strings
    return str(actual) == str(expected)


def _as_list(expected: Any) -> list:
    if isinstance(expected, (list, tuple, set)):
        return list(expected)
    return [part.strip() for part in str(expected).split(",")]


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    needle = str(expected).lower()
    if isinstance(actual, (list, tuple, set)):
        return any(str(item).lower() == needle for item in actual)
    return needle in str(actual).lower()


def _compare(predicate: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return predicate(left, right)
    return check


class ConditionEvaluator:
    """
    Evaluates condition sets.

    Both variants are conjunctions; an empty set always matches.
    """

    def __init__(self):
        self._operators: Dict[str, Callable[[Any, Any], bool]] = {
            ConditionOperator.EQUALS: _same,
            ConditionOperator.NOT_EQUALS: lambda a, e: not _same(a, e),
            ConditionOperator.CONTAINS: _contains,
            ConditionOperator.NOT_CONTAINS: lambda a, e: not _contains(a, e),
            ConditionOperator.STARTS_WITH: lambda a, e: a is not None and str(a).lower().startswith(str(e).lower()),
            ConditionOperator.ENDS_WITH: lambda a, e: a is not None and str(a).lower().endswith(str(e).lower()),
            ConditionOperator.GREATER_THAN: _compare(lambda a, e: a > e),
            ConditionOperator.LESS_THAN: _compare(lambda a, e: a < e),
            ConditionOperator.GREATER_OR_EQUAL: _compare(lambda a, e: a >= e),
            ConditionOperator.LESS_OR_EQUAL: _compare(lambda a, e: a <= e),
            ConditionOperator.IN: lambda a, e: any(_same(a, item) for item in _as_list(e)),
            ConditionOperator.NOT_IN: lambda a, e: not any(_same(a, item) for item in _as_list(e)),
            ConditionOperator.EXISTS: lambda a, e: not _is_empty(a),
            ConditionOperator.NOT_EXISTS: lambda a, e: _is_empty(a),
        }
        missing = set(VALID_CONDITION_OPERATORS) - set(self._operators)
        if missing:
            raise RuntimeError(f"Operators without an implementation: {sorted(missing)}")

    @staticmethod
    def resolve_field(
        name: str,
        fields: Mapping[str, Any],
        change: Optional[ChangeContext] = None
    ) -> Any:
        """Look up a field; "previous.<name>" reads the pre-change value."""
        if name.startswith(PREVIOUS_PREFIX):
            if change is None:
                return None
            return change.before.get(name[len(PREVIOUS_PREFIX):])
        return fields.get(name)

    def matches(
        self,
        conditions: ConditionSet,
        fields: Mapping[str, Any],
        change: Optional[ChangeContext] = None
    ) -> bool:
        if isinstance(conditions, SimpleConditions):
            return self._matches_simple(conditions, fields, change)
        if isinstance(conditions, AdvancedConditions):
            return all(self.check(c, fields, change) for c in conditions.conditions)
        raise TypeError(f"Unsupported condition set: {type(conditions).__name__}")

    def _matches_simple(
        self,
        conditions: SimpleConditions,
        fields: Mapping[str, Any],
        change: Optional[ChangeContext]
    ) -> bool:
        for name, expected in conditions.fields.items():
            actual = self.resolve_field(name, fields, change)
            if expected is None:
                if actual is not None:
                    return False
            elif not _same(actual, expected):
                return False
        return True

    def check(
        self,
        condition: Condition,
        fields: Mapping[str, Any],
        change: Optional[ChangeContext] = None
    ) -> bool:
        actual = self.resolve_field(condition.field, fields, change)
        return self._operators[condition.operator](actual, condition.value)


def elapsed_minutes(reference: datetime, now: datetime) -> int:
    """Whole minutes from reference to now; negative when reference is in the future."""
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return math.floor((now - reference).total_seconds() / 60)


def time_condition_matches(
    condition: TimeCondition,
    fields: Mapping[str, Any],
    now: datetime
) -> bool:
    """
    Compare the minutes elapsed since the reference field with the threshold.

    A missing reference (e.g. no solution deadline) never matches.
    equals accepts +/- 5 minutes so a 5 minute scan cadence cannot miss it.
    """
    reference = fields.get(TIME_REFERENCE_FIELDS[condition.field])
    if not isinstance(reference, datetime):
        return False

    elapsed = elapsed_minutes(reference, now)
    threshold = condition.threshold_minutes

    if condition.operator == ConditionOperator.GREATER_THAN:
        return elapsed > threshold
    if condition.operator == ConditionOperator.GREATER_OR_EQUAL:
        return elapsed >= threshold
    if condition.operator == ConditionOperator.LESS_THAN:
        return elapsed < threshold
    if condition.operator == ConditionOperator.LESS_OR_EQUAL:
        return elapsed <= threshold
    if condition.operator == ConditionOperator.EQUALS:
        return abs(elapsed - threshold) <= EQUALS_TOLERANCE_MINUTES
    raise TypeError(f"Unsupported time operator: {condition.operator}")
