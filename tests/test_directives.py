"""Tests for placeholder recognition."""

from stepwise.engine.directives import (
    CacheKeyRef,
    ExtractField,
    ExtractIds,
    ExtractTrades,
    Filter,
    IdSetOp,
    Literal,
    Malformed,
    ObjectSetOp,
    ResultRef,
    Slice,
    Sort,
    parse_placeholder,
)


def test_field_extraction() -> None:
    """EXTRACT_{i|LAST}.{path} takes precedence over the shorthands."""

    assert parse_placeholder("EXTRACT_0.trades.id") == ExtractField(0, "trades.id")
    assert parse_placeholder("EXTRACT_LAST.statistics.winRate") == ExtractField(None, "statistics.winRate")
    assert isinstance(parse_placeholder("EXTRACT_X.trades"), Malformed)


def test_set_operations() -> None:
    """Id and object families are told apart."""

    assert parse_placeholder("MERGE_TRADE_IDS_0_1") == IdSetOp("merge", (0, 1))
    assert parse_placeholder("UNIQUE_TRADE_IDS_0_1_2") == IdSetOp("unique", (0, 1, 2))
    assert parse_placeholder("INTERSECT_TRADES_1_3") == ObjectSetOp("intersect", (1, 3))
    assert isinstance(parse_placeholder("MERGE_EVENTS_0_1"), Malformed)
    assert isinstance(parse_placeholder("UNIQUE_TRADES_x"), Malformed)


def test_transforms() -> None:
    """SLICE, FILTER and SORT split path, property and argument."""

    assert parse_placeholder("SLICE_0.trades.0.5") == Slice(0, "trades", 0, 5)
    assert parse_placeholder("SLICE_LAST.data.trades.10.20") == Slice(None, "data.trades", 10, 20)
    assert parse_placeholder("FILTER_0.trades.amount.>100") == Filter(0, "trades", "amount", ">100")
    assert parse_placeholder("FILTER_1.trades.type.win") == Filter(1, "trades", "type", "win")
    assert parse_placeholder("SORT_0.trades.amount.desc") == Sort(0, "trades", "amount", "desc")
    assert isinstance(parse_placeholder("SORT_0.trades.amount.up"), Malformed)
    assert isinstance(parse_placeholder("SLICE_0.trades"), Malformed)


def test_filter_keeps_decimals_and_nested_paths() -> None:
    """Decimal thresholds stay in the value; nested paths stay in the field."""

    assert parse_placeholder("FILTER_0.trades.amount.>=100.5") == Filter(0, "trades", "amount", ">=100.5")
    assert parse_placeholder("FILTER_2.data.trades.session.London") == Filter(
        2, "data.trades", "session", "London"
    )


def test_result_references() -> None:
    """LAST_RESULT and RESULT_{i} refer to whole results."""

    assert parse_placeholder("LAST_RESULT") == ResultRef(None)
    assert parse_placeholder("RESULT_3") == ResultRef(3)
    assert parse_placeholder("RESULT_three") == Literal("RESULT_three")


def test_shorthands() -> None:
    """EXTRACT_TRADE_IDS / EXTRACT_TRADES with optional index."""

    assert parse_placeholder("EXTRACT_TRADE_IDS") == ExtractIds(None)
    assert parse_placeholder("EXTRACT_TRADE_IDS_1") == ExtractIds(1)
    assert parse_placeholder("EXTRACT_TRADES") == ExtractTrades(None)
    assert parse_placeholder("EXTRACT_TRADES_0") == ExtractTrades(0)
    assert isinstance(parse_placeholder("EXTRACT_TRADES_first"), Malformed)


def test_cache_keys_and_literals() -> None:
    """Cache keys pass through; other text is literal."""

    key = "ai_function_result_1700000000000_abc123def"
    assert parse_placeholder(key, "ai_function_result_") == CacheKeyRef(key)
    assert parse_placeholder(key) == Literal(key)
    assert parse_placeholder("EURUSD breakout") == Literal("EURUSD breakout")
