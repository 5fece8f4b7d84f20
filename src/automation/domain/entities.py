"""
Automation Domain Entities
===========================

Triggers, their condition sets and their actions.

A condition set is a tagged union: either a flat field=value map
(SimpleConditions) or an ordered list of operator tuples
(AdvancedConditions). Stored JSON is parsed into one of the two
variants once, at load time.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple, Union

from config import TimeUnit, VALID_TIME_UNITS
from core import ValidationException


class ConditionOperator(str):
    """Operators available to advanced conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


VALID_CONDITION_OPERATORS = [
    ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS,
    ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS,
    ConditionOperator.STARTS_WITH, ConditionOperator.ENDS_WITH,
    ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_OR_EQUAL, ConditionOperator.LESS_OR_EQUAL,
    ConditionOperator.IN, ConditionOperator.NOT_IN,
    ConditionOperator.EXISTS, ConditionOperator.NOT_EXISTS,
]

TIME_OPERATORS = [
    ConditionOperator.GREATER_THAN, ConditionOperator.GREATER_OR_EQUAL,
    ConditionOperator.LESS_THAN, ConditionOperator.LESS_OR_EQUAL,
    ConditionOperator.EQUALS,
]

TIME_REFERENCE_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "response_due_at": "response_due_at",
    "solution_due_at": "solution_due_at",
}

ADVANCED_MARKER = "_advanced"
TIME_CONDITION_KEY = "timeCondition"


@dataclass(frozen=True)
class Condition:
    """One {field, operator, value} check."""
    field: str
    operator: str
    value: Any = None

    def __post_init__(self):
        if not self.field:
            raise ValidationException("Condition field must not be empty")
        if self.operator not in VALID_CONDITION_OPERATORS:
            raise ValidationException(f"Unknown condition operator '{self.operator}'")


@dataclass(frozen=True)
class SimpleConditions:
    """Conjunction of exact-equality checks; a None value means "must be null"."""
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AdvancedConditions:
    """Conjunction of operator checks, evaluated in order."""
    conditions: Tuple[Condition, ...] = ()


ConditionSet = Union[SimpleConditions, AdvancedConditions]


@dataclass(frozen=True)
class TimeCondition:
    """Elapsed-time check used by time-based triggers."""
    field: str
    operator: str
    value: float
    unit: str = TimeUnit.MINUTES

    def __post_init__(self):
        if self.field not in TIME_REFERENCE_FIELDS:
            raise ValidationException(f"Unsupported time reference field '{self.field}'")
        if self.operator not in TIME_OPERATORS:
            raise ValidationException(f"Unsupported time operator '{self.operator}'")
        if self.unit not in VALID_TIME_UNITS:
            raise ValidationException(f"Unsupported time unit '{self.unit}'")

    @property
    def threshold_minutes(self) -> float:
        if self.unit == TimeUnit.HOURS:
            return self.value * 60
        if self.unit == TimeUnit.DAYS:
            return self.value * 60 * 24
        return self.value


@dataclass(frozen=True)
class TriggerAction:
    """One action of a trigger; parameters are action-specific."""
    type: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "TriggerAction":
        """Accept both {"type", "parameters": {...}} and flat {"type", ...params}."""
        if "type" not in raw:
            raise ValidationException("Action is missing its type")
        if isinstance(raw.get("parameters"), Mapping):
            params = dict(raw["parameters"])
        else:
            params = {k: v for k, v in raw.items() if k != "type"}
        return cls(type=raw["type"], parameters=params)

    def get(self, name: str, default: Any = None) -> Any:
        return self.parameters.get(name, default)


@dataclass(frozen=True)
class ChangeContext:
    """Before/after field values for "changed" trigger types."""
    before: Mapping[str, Any] = field(default_factory=dict)
    after: Mapping[str, Any] = field(default_factory=dict)
    user_id: Optional[Any] = None

    @property
    def changed_fields(self) -> set:
        keys = set(self.before) | set(self.after)
        return {k for k in keys if self.before.get(k) != self.after.get(k)}


def parse_condition_set(raw: Optional[Mapping[str, Any]]) -> Tuple[ConditionSet, Optional[TimeCondition]]:
    """
    Parse stored trigger conditions into a ConditionSet and optional TimeCondition.

    Stored shapes:
        {"status": "open", "priority": null}                    -> SimpleConditions
        {"_advanced": true, "conditions": [{field, operator, value}, ...]} -> AdvancedConditions
        either of the above plus {"timeCondition": {field, operator, value, unit}}
    """
    raw = dict(raw or {})
    time_condition = None

    time_raw = raw.pop(TIME_CONDITION_KEY, None)
    if time_raw:
        try:
            time_condition = TimeCondition(
                field=time_raw["field"],
                operator=time_raw["operator"],
                value=float(time_raw["value"]),
                unit=time_raw.get("unit", TimeUnit.MINUTES),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationException(f"Invalid time condition: {e}")

    if raw.get(ADVANCED_MARKER):
        items = raw.get("conditions") or []
        try:
            conditions = tuple(
                Condition(field=c["field"], operator=c["operator"], value=c.get("value"))
                for c in items
            )
        except (KeyError, TypeError) as e:
            raise ValidationException(f"Invalid advanced condition: {e}")
        return AdvancedConditions(conditions=conditions), time_condition

    simple = {k: v for k, v in raw.items() if not str(k).startswith("_")}
    return SimpleConditions(fields=simple), time_condition


@dataclass(frozen=True)
class AutomationTrigger:
    """An administrator-defined rule. Read-only to the engine."""
    id: Any
    name: str
    trigger_type: str
    conditions: ConditionSet = field(default_factory=SimpleConditions)
    actions: Tuple[TriggerAction, ...] = ()
    is_active: bool = True
    time_condition: Optional[TimeCondition] = None

    @classmethod
    def from_raw(
        cls,
        id: Any,
        name: str,
        trigger_type: str,
        conditions: Optional[Mapping[str, Any]],
        actions: Optional[list],
        is_active: bool = True
    ) -> "AutomationTrigger":
        condition_set, time_condition = parse_condition_set(conditions)
        return cls(
            id=id,
            name=name,
            trigger_type=trigger_type,
            conditions=condition_set,
            actions=tuple(TriggerAction.from_raw(a) for a in (actions or [])),
            is_active=is_active,
            time_condition=time_condition,
        )
