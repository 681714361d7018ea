"""Tests for step condition evaluation."""

import pytest

from stepwise.core.schema import ExecutionHistoryEntry
from stepwise.engine.conditions import (
    ConditionEvaluator,
    evaluate_condition,
    evaluate_expression,
    parse_value,
)

HISTORY = [
    ExecutionHistoryEntry(
        tool_name="searchTrades",
        result={"count": 5, "trades": [{"id": "a"}, {"id": "b"}, {"id": "c"}], "status": "open"},
    ),
    ExecutionHistoryEntry(
        tool_name="getTradeStatistics",
        result={"winRate": 0.62, "hasData": True, "label": "150"},
    ),
]


@pytest.mark.parametrize(
    "condition, expected",
    [
        ("RESULT_0.count > 10", False),
        ("RESULT_0.count >= 5", True),
        ("RESULT_0.count <= 4", False),
        ("RESULT_0.count < 6", True),
        ("RESULT_1.winRate >= 0.6", True),
        ("LAST_RESULT.winRate > 0.7", False),
        ("RESULT_0.trades.length > 2", True),
        ('RESULT_0.status === "open"', True),
        ('RESULT_0.status !== "open"', False),
        ("RESULT_1.hasData === true", True),
        ("RESULT_1.hasData", True),
        ("!RESULT_1.hasData", False),
        ("true", True),
        ("false", False),
    ],
)
def test_comparisons(condition: str, expected: bool) -> None:
    assert evaluate_condition(condition, HISTORY) is expected


def test_strict_and_loose_equality() -> None:
    """=== compares type and value, == coerces numbers and strings."""

    assert evaluate_condition("RESULT_1.label == 150", HISTORY) is True
    assert evaluate_condition("RESULT_1.label === 150", HISTORY) is False
    assert evaluate_condition("RESULT_0.count != 5", HISTORY) is False
    assert evaluate_condition("RESULT_0.count !== 5", HISTORY) is False


def test_combined_conditions() -> None:
    """&& binds tighter than ||."""

    assert evaluate_condition("RESULT_0.count > 1 && RESULT_1.winRate > 0.5", HISTORY) is True
    assert evaluate_condition("RESULT_0.count > 10 && RESULT_1.winRate > 0.5", HISTORY) is False
    assert evaluate_condition("RESULT_0.count > 10 || RESULT_1.hasData === true", HISTORY) is True
    assert evaluate_expression("false && true || true") is True


def test_missing_references_become_null() -> None:
    """Unknown fields and indices substitute null rather than raising."""

    evaluator = ConditionEvaluator()
    assert evaluator.substitute("RESULT_7.count > 1", HISTORY, None) == "null > 1"
    assert evaluator.substitute("RESULT_0.nope == null", HISTORY, None) == "null == null"
    assert evaluator.evaluate("RESULT_0.nope == null", HISTORY) is True


def test_errors_evaluate_false() -> None:
    """Ordering against null or text is an error and the step is skipped."""

    assert evaluate_condition("RESULT_7.count > 1", HISTORY) is False
    assert evaluate_condition('RESULT_0.status > 3', HISTORY) is False


def test_last_result_defaults_to_latest_executed() -> None:
    """Skipped entries are ignored when LAST_RESULT is derived from history."""

    history = HISTORY + [
        ExecutionHistoryEntry(tool_name="x", result={"skipped": True, "reason": "r"}, skipped=True)
    ]
    assert evaluate_condition("LAST_RESULT.winRate > 0.5", history) is True
    assert evaluate_condition("LAST_RESULT.count > 1", history, last_result={"count": 0}) is False


def test_parse_value() -> None:
    assert parse_value(" 12 ") == 12
    assert parse_value('"x"') == "x"
    assert parse_value("null") is None
    assert parse_value("open") == "open"


def test_operators_inside_string_values() -> None:
    """Operators that appear inside substituted string values are not split on."""

    history = [
        ExecutionHistoryEntry(tool_name="journal", result={"note": "R>2 && held", "tag": "a||b"}),
    ]
    assert evaluate_condition('RESULT_0.note === "R>2 && held"', history) is True
    assert evaluate_condition('RESULT_0.tag == "a||b" && true', history) is True
    assert evaluate_condition('RESULT_0.note !== "R>2 && held" || RESULT_0.tag === "x"', history) is False
