"""Tests for placeholder resolution against an execution history."""

from datetime import (
    datetime,
    timezone,
)
from typing import Any

from stepwise.core.schema import ExecutionHistoryEntry
from stepwise.engine.resolver import (
    PlaceholderResolver,
    last_result,
)

SEARCH = {
    "trades": [
        {"id": "a", "amount": 50, "type": "loss"},
        {"id": "b", "amount": 150, "type": "win"},
        {"tradeId": "c", "amount": 200, "type": "win"},
    ],
    "count": 3,
}
STATS = {"statistics": {"winRate": 66.7, "totalTrades": 3}, "count": 0}


def _entry(result: Any, skipped: bool = False) -> ExecutionHistoryEntry:
    return ExecutionHistoryEntry(tool_name="tool", resolved_args={}, result=result, skipped=skipped)


def _history(*results: Any) -> list[ExecutionHistoryEntry]:
    return [_entry(result) for result in results]


def test_field_extraction_and_id_mapping() -> None:
    """Dot paths walk nested data; a final id maps list elements to identifiers."""

    resolver = PlaceholderResolver()
    history = _history(SEARCH, STATS)
    resolved = resolver.resolve(
        {"ids": "EXTRACT_0.trades.id", "rate": "EXTRACT_LAST.statistics.winRate", "n": "EXTRACT_1.count"},
        history,
    )
    assert resolved == {"ids": ["a", "b", "c"], "rate": 66.7, "n": 0}
    assert resolver.warnings == []


def test_broken_path_degrades_to_empty_list() -> None:
    """Missing fields give [] and a diagnostic naming the available keys."""

    resolver = PlaceholderResolver()
    resolved = resolver.resolve({"x": "EXTRACT_0.statistics.winRate"}, _history(SEARCH))
    assert resolved == {"x": []}
    assert len(resolver.warnings) == 1
    assert "Available fields: trades, count" in resolver.warnings[0]


def test_missing_index_degrades() -> None:
    """Out-of-range references never raise."""

    resolver = PlaceholderResolver()
    resolved = resolver.resolve(
        {"a": "EXTRACT_5.trades", "b": "RESULT_5", "c": "SLICE_9.trades.0.1", "d": "LAST_RESULT"},
        [],
    )
    assert resolved == {"a": [], "b": None, "c": [], "d": None}
    assert len(resolver.warnings) == 4


def test_whole_result_references() -> None:
    """RESULT_{i} and LAST_RESULT return entire results."""

    history = _history(SEARCH, STATS)
    resolved = PlaceholderResolver().resolve({"first": "RESULT_0", "last": "LAST_RESULT"}, history)
    assert resolved == {"first": SEARCH, "last": STATS}


def test_last_skips_skipped_entries() -> None:
    """LAST refers to the most recent executed step."""

    history = [_entry(SEARCH), _entry({"skipped": True, "reason": "x"}, skipped=True)]
    assert last_result(history) == SEARCH
    resolved = PlaceholderResolver().resolve({"ids": "EXTRACT_TRADE_IDS"}, history)
    assert resolved == {"ids": ["a", "b", "c"]}


def test_shorthands_tolerate_shapes() -> None:
    """EXTRACT_TRADES / EXTRACT_TRADE_IDS accept several result shapes."""

    history = _history(
        SEARCH["trades"],
        {"data": {"trades": SEARCH["trades"][:1]}},
        {"id": "solo"},
        {"tradeIds": ["x", "y"], "count": 2},
        ["p", "q"],
    )
    resolved = PlaceholderResolver().resolve(
        {
            "t0": "EXTRACT_TRADES_0",
            "t1": "EXTRACT_TRADES_1",
            "t2": "EXTRACT_TRADES_2",
            "i1": "EXTRACT_TRADE_IDS_1",
            "i2": "EXTRACT_TRADE_IDS_2",
            "i3": "EXTRACT_TRADE_IDS_3",
            "i4": "EXTRACT_TRADE_IDS_4",
        },
        history,
    )
    assert resolved["t0"] == SEARCH["trades"]
    assert resolved["t1"] == SEARCH["trades"][:1]
    assert resolved["t2"] == [{"id": "solo"}]
    assert resolved["i1"] == ["a"]
    assert resolved["i2"] == ["solo"]
    assert resolved["i3"] == ["x", "y"]
    assert resolved["i4"] == ["p", "q"]


def test_unrecognised_shape_warns() -> None:
    """A result with no trades degrades to []."""

    resolver = PlaceholderResolver()
    assert resolver.resolve({"t": "EXTRACT_TRADES"}, _history(STATS)) == {"t": []}
    assert resolver.warnings


def test_set_operations_over_history() -> None:
    """MERGE / UNIQUE / INTERSECT read ids from the named results."""

    history = _history({"tradeIds": ["a", "b"]}, {"trades": [{"id": "b"}, {"id": "c"}]})
    resolved = PlaceholderResolver().resolve(
        {
            "merged": "MERGE_TRADE_IDS_0_1",
            "unique": "UNIQUE_TRADE_IDS_0_1",
            "common": "INTERSECT_TRADE_IDS_0_1",
            "objects": "INTERSECT_TRADES_1_1",
        },
        history,
    )
    assert resolved["merged"] == ["a", "b", "b", "c"]
    assert resolved["unique"] == ["a", "b", "c"]
    assert resolved["common"] == ["b"]
    assert resolved["objects"] == [{"id": "b"}, {"id": "c"}]


def test_set_operation_skips_bad_index() -> None:
    """Invalid indices are reported and ignored."""

    resolver = PlaceholderResolver()
    resolved = resolver.resolve({"ids": "MERGE_TRADE_IDS_0_7"}, _history(SEARCH))
    assert resolved == {"ids": ["a", "b", "c"]}
    assert any("Invalid index 7" in message for message in resolver.warnings)


def test_transforms_over_history() -> None:
    """SLICE, FILTER and SORT run on arrays found by path."""

    resolved = PlaceholderResolver().resolve(
        {
            "top": "SLICE_0.trades.0.2",
            "big": "FILTER_0.trades.amount.>100",
            "wins": "FILTER_LAST.trades.type.win",
            "order": "SORT_0.trades.amount.desc",
        },
        _history(SEARCH),
    )
    assert [t["amount"] for t in resolved["top"]] == [50, 150]
    assert [t["amount"] for t in resolved["big"]] == [150, 200]
    assert [t["amount"] for t in resolved["wins"]] == [150, 200]
    assert [t["amount"] for t in resolved["order"]] == [200, 150, 50]


def test_transform_on_non_array_degrades() -> None:
    """Transforms need a list at the path."""

    resolver = PlaceholderResolver()
    assert resolver.resolve({"x": "SORT_0.count.amount.asc"}, _history(SEARCH)) == {"x": []}
    assert "non-array" in resolver.warnings[0]


def test_literals_and_non_strings_pass_through() -> None:
    """Plain strings, cache keys and non-string values are untouched."""

    key = "ai_function_result_1700000000000_abcdefghi"
    args = {"query": "breakout", "limit": 5, "tags": ["EXTRACT_TRADES"], "key": key}
    assert PlaceholderResolver().resolve(args, _history(SEARCH)) == args


def test_malformed_directive_degrades() -> None:
    """Directive-shaped but unparsable strings become []."""

    resolver = PlaceholderResolver()
    assert resolver.resolve({"x": "SORT_0.trades"}, _history(SEARCH)) == {"x": []}
    assert "Invalid placeholder" in resolver.warnings[0]


def test_unexpected_errors_degrade() -> None:
    """Errors raised inside an operator are reported and degrade like any other miss."""

    history = _history(
        {
            "trades": [
                {"id": "a", "opened": datetime(2024, 1, 2)},
                {"id": "b", "opened": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            ]
        }
    )
    resolver = PlaceholderResolver()
    assert resolver.resolve({"x": "SORT_0.trades.opened.asc"}, history) == {"x": []}
    assert len(resolver.warnings) == 1
    assert "SORT_0.trades.opened.asc" in resolver.warnings[0]
