from datetime import timedelta

import pytest

from automation.domain import (
    AdvancedConditions,
    ChangeContext,
    Condition,
    ConditionEvaluator,
    SimpleConditions,
    TimeCondition,
    parse_condition_set,
    time_condition_matches,
)
from core import ValidationException

from conftest import at


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


def _advanced(*conditions):
    return AdvancedConditions(conditions=tuple(Condition(*c) for c in conditions))


def test_simple_conditions_match_by_equality(evaluator):
    conditions = SimpleConditions({"status": "open"})

    assert evaluator.matches(conditions, {"status": "open", "priority": "high"})
    assert not evaluator.matches(conditions, {"status": "pending", "priority": "high"})


def test_simple_null_value_requires_null_field(evaluator):
    conditions = SimpleConditions({"assignee_id": None})

    assert evaluator.matches(conditions, {"assignee_id": None})
    assert not evaluator.matches(conditions, {"assignee_id": 7})


def test_simple_conditions_compare_ids_as_strings(evaluator):
    assert evaluator.matches(SimpleConditions({"contract_id": "3"}), {"contract_id": 3})


def test_empty_condition_set_always_matches(evaluator):
    assert evaluator.matches(SimpleConditions(), {"status": "closed"})
    assert evaluator.matches(AdvancedConditions(), {})


def test_advanced_conditions_are_a_conjunction(evaluator):
    conditions = _advanced(("status", "equals", "open"), ("priority", "equals", "urgent"))

    assert evaluator.matches(conditions, {"status": "open", "priority": "urgent"})
    assert not evaluator.matches(conditions, {"status": "open", "priority": "low"})


@pytest.mark.parametrize("operator,actual,expected,result", [
    ("equals", "open", "open", True),
    ("not_equals", "open", "closed", True),
    ("contains", "Printer on fire", "FIRE", True),
    ("contains", ["vip", "billing"], "vip", True),
    ("contains", None, "vip", False),
    ("not_contains", "Printer on fire", "water", True),
    ("starts_with", "URGENT: server down", "urgent", True),
    ("ends_with", "report.pdf", ".PDF", True),
    ("greater_than", 5, "3", True),
    ("greater_than", "abc", 3, False),
    ("less_than", 2, 3, True),
    ("greater_or_equal", 3, 3, True),
    ("less_or_equal", 4, 3, False),
    ("less_than", None, 3, False),
    ("in", "high", "low, high", True),
    ("in", "medium", ["low", "high"], False),
    ("not_in", "medium", "low,high", True),
    ("exists", "", None, False),
    ("exists", "x", None, True),
    ("not_exists", None, None, True),
])
def test_operators(evaluator, operator, actual, expected, result):
    assert evaluator.check(Condition("field", operator, expected), {"field": actual}) is result


def test_previous_prefix_reads_pre_change_values(evaluator):
    change = ChangeContext(before={"status": "open"}, after={"status": "resolved"})
    conditions = _advanced(("previous.status", "equals", "open"), ("status", "equals", "resolved"))

    assert evaluator.matches(conditions, {"status": "resolved"}, change)
    assert change.changed_fields == {"status"}


def test_previous_prefix_without_change_is_null(evaluator):
    assert evaluator.check(Condition("previous.status", "not_exists"), {"status": "open"})


def test_unknown_operator_rejected():
    with pytest.raises(ValidationException):
        Condition("status", "matches_regex", ".*")


def test_parse_simple_shape():
    conditions, time_condition = parse_condition_set({"status": "open", "priority": None})

    assert conditions == SimpleConditions({"status": "open", "priority": None})
    assert time_condition is None


def test_parse_advanced_shape_with_time_condition():
    conditions, time_condition = parse_condition_set({
        "_advanced": True,
        "conditions": [{"field": "status", "operator": "equals", "value": "open"}],
        "timeCondition": {"field": "created_at", "operator": "greater_than", "value": 2, "unit": "hours"},
    })

    assert conditions == _advanced(("status", "equals", "open"))
    assert time_condition.threshold_minutes == 120


def test_parse_rejects_malformed_shapes():
    with pytest.raises(ValidationException):
        parse_condition_set({"_advanced": True, "conditions": [{"field": "status"}]})
    with pytest.raises(ValidationException):
        parse_condition_set({"timeCondition": {"field": "created_at", "operator": "greater_than", "value": "soon"}})
    with pytest.raises(ValidationException):
        parse_condition_set({"timeCondition": {"field": "closed_at", "operator": "greater_than", "value": 1}})


def test_time_condition_units():
    assert TimeCondition("created_at", "greater_than", 30).threshold_minutes == 30
    assert TimeCondition("created_at", "greater_than", 1.5, "hours").threshold_minutes == 90
    assert TimeCondition("created_at", "greater_than", 2, "days").threshold_minutes == 2880


def test_time_condition_comparisons():
    now = at(2, 12)
    fields = {"created_at": now - timedelta(minutes=90), "solution_due_at": None}

    assert time_condition_matches(TimeCondition("created_at", "greater_than", 1, "hours"), fields, now)
    assert not time_condition_matches(TimeCondition("created_at", "less_than", 1, "hours"), fields, now)
    assert time_condition_matches(TimeCondition("created_at", "greater_or_equal", 90), fields, now)
    assert time_condition_matches(TimeCondition("created_at", "less_or_equal", 90), fields, now)


def test_time_condition_equals_has_tolerance():
    now = at(2, 12)
    fields = {"created_at": now - timedelta(minutes=63)}

    assert time_condition_matches(TimeCondition("created_at", "equals", 60), fields, now)
    assert not time_condition_matches(TimeCondition("created_at", "equals", 50), fields, now)


def test_time_condition_missing_reference_never_matches():
    condition = TimeCondition("solution_due_at", "greater_than", 0)

    assert not time_condition_matches(condition, {"solution_due_at": None}, at(2, 12))


def test_time_condition_after_deadline():
    now = at(2, 12)
    condition = TimeCondition("solution_due_at", "greater_than", 30)

    assert time_condition_matches(condition, {"solution_due_at": now - timedelta(minutes=45)}, now)
    assert not time_condition_matches(condition, {"solution_due_at": now + timedelta(minutes=45)}, now)
