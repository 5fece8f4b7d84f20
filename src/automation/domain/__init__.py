"""
Automation Domain Layer
=======================

Triggers, tagged-union condition sets, actions and their pure evaluation.
"""

from automation.domain.entities import (
    ConditionOperator,
    Condition,
    SimpleConditions,
    AdvancedConditions,
    ConditionSet,
    TimeCondition,
    TriggerAction,
    ChangeContext,
    AutomationTrigger,
    parse_condition_set,
    VALID_CONDITION_OPERATORS,
)
from automation.domain.conditions import (
    ConditionEvaluator,
    elapsed_minutes,
    time_condition_matches,
)

__all__ = [
    "ConditionOperator",
    "Condition",
    "SimpleConditions",
    "AdvancedConditions",
    "ConditionSet",
    "TimeCondition",
    "TriggerAction",
    "ChangeContext",
    "AutomationTrigger",
    "parse_condition_set",
    "VALID_CONDITION_OPERATORS",
    "ConditionEvaluator",
    "elapsed_minutes",
    "time_condition_matches",
]
