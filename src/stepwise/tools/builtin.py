"""
Tools the engine ships with.

These sit next to the host's analytic tools in the same registry: id extraction so results can be
narrowed before they are handed on, a catalogue of placeholder directives the model can consult,
and the multi-step executor itself.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
    TYPE_CHECKING,
)

from stepwise.engine.extraction import identifier_of
from stepwise.tools import ToolRegistry

if TYPE_CHECKING:
    from stepwise.engine.executor import SequentialExecutor

logger = logging.getLogger(__name__)

_MAX_INVALID_DETAILS = 5


def extract_trade_ids(trades: Any = None) -> Dict[str, Any]:
    """Extract unique trade IDs from a list of trade objects or ID strings."""
    if not isinstance(trades, list):
        return {
            "success": False,
            "error": "Invalid trades parameter. Expected an array of trade objects.",
        }

    if not trades:
        return {
            "success": True,
            "data": {
                "tradeIds": [],
                "count": 0,
                "message": "No trades provided to extract IDs from.",
            },
        }

    trade_ids: List[Any] = []
    invalid: List[Dict[str, Any]] = []
    for index, trade in enumerate(trades):
        trade_id = trade if isinstance(trade, str) and trade else identifier_of(trade)
        if trade_id:
            trade_ids.append(trade_id)
        else:
            invalid.append({"index": index, "trade": trade})

    unique = list(dict.fromkeys(trade_ids))
    logger.info("Extracted %d unique trade IDs from %d trades", len(unique), len(trades))

    data: Dict[str, Any] = {
        "tradeIds": unique,
        "count": len(unique),
        "totalProcessed": len(trades),
        "duplicatesRemoved": len(trade_ids) - len(unique),
        "invalidTrades": len(invalid),
    }
    if invalid:
        data["invalidTradesDetails"] = invalid[:_MAX_INVALID_DETAILS]
    return {"success": True, "data": data}


PLACEHOLDER_PATTERNS: Dict[str, Dict[str, Any]] = {
    "core": {
        "description": "Basic result passing between functions - use these for most workflows",
        "patterns": [
            {
                "pattern": "LAST_RESULT",
                "example": "LAST_RESULT",
                "description": "Complete result from the previous function",
            },
            {
                "pattern": "RESULT_{index}",
                "example": "RESULT_0, RESULT_1",
                "description": "Result from a specific function by index (0-based)",
            },
            {
                "pattern": "EXTRACT_TRADES",
                "example": "EXTRACT_TRADES",
                "description": "Trades array from the previous result",
            },
            {
                "pattern": "EXTRACT_TRADE_IDS",
                "example": "EXTRACT_TRADE_IDS",
                "description": "Trade IDs from the previous result",
            },
        ],
    },
    "extraction": {
        "description": "Extract specific data from function results using indices and field paths",
        "patterns": [
            {
                "pattern": "EXTRACT_TRADE_IDS_{index}",
                "example": "EXTRACT_TRADE_IDS_0, EXTRACT_TRADE_IDS_2",
                "description": "Trade IDs from a specific result",
            },
            {
                "pattern": "EXTRACT_TRADES_{index}",
                "example": "EXTRACT_TRADES_1",
                "description": "Trades array from a specific result",
            },
            {
                "pattern": "EXTRACT_{index}.{field.path}",
                "example": "EXTRACT_0.trades.id, EXTRACT_1.statistics.winRate",
                "description": "Nested field by dot path; a trailing 'id' over an array maps to ids",
            },
            {
                "pattern": "EXTRACT_LAST.{field.path}",
                "example": "EXTRACT_LAST.statistics.winRate",
                "description": "Nested field from the last result",
            },
        ],
    },
    "arrays": {
        "description": "Combine, deduplicate, or intersect data from several function results",
        "patterns": [
            {
                "pattern": "MERGE_TRADE_IDS_{index}_{index}",
                "example": "MERGE_TRADE_IDS_0_1",
                "description": "Concatenate trade IDs from several results",
            },
            {
                "pattern": "UNIQUE_TRADE_IDS_{index}_{index}",
                "example": "UNIQUE_TRADE_IDS_0_1_2",
                "description": "Merged trade IDs without duplicates",
            },
            {
                "pattern": "INTERSECT_TRADE_IDS_{index}_{index}",
                "example": "INTERSECT_TRADE_IDS_0_1",
                "description": "Trade IDs present in every listed result",
            },
            {
                "pattern": "MERGE_TRADES_{index}_{index}",
                "example": "MERGE_TRADES_0_1",
                "description": "Concatenate trade objects from several results",
            },
            {
                "pattern": "UNIQUE_TRADES_{index}_{index}",
                "example": "UNIQUE_TRADES_0_1",
                "description": "Merged trade objects, one per ID",
            },
            {
                "pattern": "INTERSECT_TRADES_{index}_{index}",
                "example": "INTERSECT_TRADES_0_2",
                "description": "Trade objects whose ID is present in every listed result",
            },
        ],
    },
    "transformations": {
        "description": "Slice, filter, or sort arrays from function results",
        "patterns": [
            {
                "pattern": "SLICE_{index}.{field}.{start}.{end}",
                "example": "SLICE_0.trades.0.5, SLICE_LAST.trades.10.20",
                "description": "Items from start (inclusive) to end (exclusive)",
            },
            {
                "pattern": "FILTER_{index}.{field}.{property}.{value}",
                "example": "FILTER_0.trades.type.win, FILTER_1.trades.amount.>100",
                "description": (
                    "Keep items whose property matches. Operators: >, <, >=, <=, ==, !=. "
                    "Special values: 'win', 'loss'"
                ),
            },
            {
                "pattern": "SORT_{index}.{field}.{property}.{direction}",
                "example": "SORT_0.trades.amount.desc, SORT_1.trades.date.asc",
                "description": "Order items by property, asc or desc",
            },
        ],
    },
    "conditions": {
        "description": "Expressions for the 'condition' field of a step",
        "patterns": [
            {
                "pattern": "RESULT_{index}.{field} {operator} {value}",
                "example": "RESULT_0.count > 10, RESULT_1.winRate >= 0.6",
                "description": "Compare a field of a specific result with a value",
            },
            {
                "pattern": "LAST_RESULT.{field} {operator} {value}",
                "example": "LAST_RESULT.trades.length > 5",
                "description": "Compare a field of the last result with a value",
            },
            {
                "pattern": "Combined conditions",
                "example": "RESULT_0.count > 10 && RESULT_1.winRate > 0.5",
                "description": "Join comparisons with && (and) or || (or)",
            },
        ],
    },
}


def get_available_placeholder_patterns(category: str = "all") -> Dict[str, Any]:
    """Describe the placeholder directives usable in multi-step arguments and conditions."""
    if category != "all" and category not in PLACEHOLDER_PATTERNS:
        return {
            "success": False,
            "error": (
                f"Unknown category: {category}. Available categories: "
                f"{', '.join(PLACEHOLDER_PATTERNS)}, all"
            ),
        }

    patterns = PLACEHOLDER_PATTERNS if category == "all" else {category: PLACEHOLDER_PATTERNS[category]}
    return {
        "success": True,
        "data": {
            "category": category,
            "availableCategories": list(PLACEHOLDER_PATTERNS),
            "patterns": patterns,
            "usage": (
                "Use these patterns as string values in executeMultipleFunctions arguments. "
                "Replace {index} with 0, 1, 2, ... and {field.path} with dot notation such as "
                "'trades.id' or 'statistics.winRate'."
            ),
        },
    }


def register_builtin_tools(
    registry: ToolRegistry, executor: Optional["SequentialExecutor"] = None
) -> ToolRegistry:
    """
    Add the engine's own tools to *registry*.

    ``executeMultipleFunctions`` is only added when an *executor* is given.
    """
    registry.add("extractTradeIds", extract_trade_ids)
    registry.add("getAvailablePlaceholderPatterns", get_available_placeholder_patterns)

    if executor is not None:

        async def execute_multiple_functions(
            functions: List[Dict[str, Any]], description: Optional[str] = None
        ) -> Dict[str, Any]:
            """Run several functions in sequence, chaining results through placeholders."""
            outcome = await executor.run({"functions": functions, "description": description})
            return outcome.model_dump(by_alias=True)

        registry.add("executeMultipleFunctions", execute_multiple_functions)

    return registry
