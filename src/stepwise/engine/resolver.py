"""
Substitutes placeholder directives in step arguments with data from the execution history.

Resolution never raises.  A directive that points at missing data degrades to an empty list (or
``None`` for whole-result references) and the reason is logged and kept in
:attr:`PlaceholderResolver.warnings` so callers can observe every degrade.
"""

import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Sequence,
)

from stepwise.config import (
    Settings,
    settings as default_settings,
)
from stepwise.core.schema import ExecutionHistoryEntry
from stepwise.engine import operators
from stepwise.engine.directives import (
    ARRAY_DIRECTIVES,
    CacheKeyRef,
    Directive,
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
    Source,
    parse_placeholder,
)
from stepwise.engine.extraction import (
    Lookup,
    extract_trade_ids,
    extract_trades,
    lookup_path,
)

logger = logging.getLogger(__name__)

History = Sequence[ExecutionHistoryEntry]


def last_result(history: History) -> Any:
    """Result of the most recent executed (non-skipped) step, or None."""
    for entry in reversed(history):
        if not entry.skipped:
            return entry.result
    return None


def _label(source: Source) -> str:
    return "LAST" if source is None else str(source)


def _result_at(history: History, source: Source) -> Lookup:
    if source is None:
        if not any(not entry.skipped for entry in history):
            return Lookup.fail("Cannot read LAST: no step has executed yet")
        return Lookup(last_result(history))
    if 0 <= source < len(history):
        return Lookup(history[source].result)
    return Lookup.fail(
        f"Result {source} not found. Available results: 0-{len(history) - 1}"
        if history
        else f"Result {source} not found. No results available yet"
    )


# ---------------------------------------------------------------------------
# Directive evaluation
# ---------------------------------------------------------------------------
def _eval_extract_field(directive: ExtractField, history: History) -> Lookup:
    target = _result_at(history, directive.source)
    if not target.ok:
        return target
    if target.value is None:
        return Lookup.fail(f"Cannot extract from {_label(directive.source)}: result is empty")
    return lookup_path(target.value, directive.path, f"EXTRACT_{_label(directive.source)}")


def _gather(
    history: History, indices: Sequence[int], extractor: Callable[[Any], Lookup]
) -> tuple[List[List[Any]], List[str]]:
    """Extract a list per valid index; out-of-range indices are reported, not fatal."""
    lists: List[List[Any]] = []
    problems: List[str] = []
    for index in indices:
        target = _result_at(history, index)
        if not target.ok:
            problems.append(f"Invalid index {index}: {target.error.message}")
            continue
        extracted = extractor(target.value)
        if not extracted.ok:
            problems.append(f"Result {index}: {extracted.error.message}")
        lists.append(extracted.value if extracted.ok else [])
    return lists, problems


_ID_OPS: Dict[str, Callable[[Sequence[List[Any]]], List[Any]]] = {
    "merge": operators.merge_ids,
    "unique": lambda lists: operators.unique_ids(operators.merge_ids(lists)),
    "intersect": operators.intersect_ids,
}

_OBJECT_OPS: Dict[str, Callable[[Sequence[List[Any]]], List[Any]]] = {
    "merge": operators.merge_objects,
    "unique": lambda lists: operators.unique_objects(operators.merge_objects(lists)),
    "intersect": operators.intersect_objects,
}


def _eval_set_op(
    directive: IdSetOp | ObjectSetOp, history: History, warn: Callable[[str], None]
) -> Lookup:
    if isinstance(directive, IdSetOp):
        lists, problems = _gather(history, directive.indices, extract_trade_ids)
        combine = _ID_OPS[directive.op]
    else:
        lists, problems = _gather(history, directive.indices, extract_trades)
        combine = _OBJECT_OPS[directive.op]
    for problem in problems:
        warn(problem)
    return Lookup(combine(lists))


def _array_at(history: History, source: Source, path: str, name: str) -> Lookup:
    target = _result_at(history, source)
    if not target.ok:
        return target
    data = lookup_path(target.value, path, f"{name}_{_label(source)}")
    if not data.ok:
        return data
    if not isinstance(data.value, list):
        return Lookup.fail(f"Cannot {name.lower()} non-array data from {_label(source)}.{path}")
    return data


def _eval_slice(directive: Slice, history: History) -> Lookup:
    data = _array_at(history, directive.source, directive.path, "SLICE")
    if not data.ok:
        return data
    return Lookup(operators.slice_items(data.value, directive.start, directive.end))


def _eval_filter(directive: Filter, history: History) -> Lookup:
    data = _array_at(history, directive.source, directive.path, "FILTER")
    if not data.ok:
        return data
    return Lookup(operators.filter_items(data.value, directive.prop, directive.value))


def _eval_sort(directive: Sort, history: History) -> Lookup:
    data = _array_at(history, directive.source, directive.path, "SORT")
    if not data.ok:
        return data
    return Lookup(operators.sort_items(data.value, directive.prop, directive.direction))


def _eval_result_ref(directive: ResultRef, history: History) -> Lookup:
    return _result_at(history, directive.source)


def _eval_extract_ids(directive: ExtractIds, history: History) -> Lookup:
    target = _result_at(history, directive.source)
    return extract_trade_ids(target.value) if target.ok else target


def _eval_extract_trades(directive: ExtractTrades, history: History) -> Lookup:
    target = _result_at(history, directive.source)
    return extract_trades(target.value) if target.ok else target


def _eval_malformed(directive: Malformed, _history: History) -> Lookup:
    return Lookup.fail(f"Invalid placeholder {directive.text!r}. {directive.reason}")


def _eval_passthrough(directive: CacheKeyRef | Literal, _history: History) -> Lookup:
    return Lookup(directive.key if isinstance(directive, CacheKeyRef) else directive.value)


_HANDLERS: Dict[type, Callable[[Any, History], Lookup]] = {
    ExtractField: _eval_extract_field,
    Slice: _eval_slice,
    Filter: _eval_filter,
    Sort: _eval_sort,
    ResultRef: _eval_result_ref,
    ExtractIds: _eval_extract_ids,
    ExtractTrades: _eval_extract_trades,
    Malformed: _eval_malformed,
    CacheKeyRef: _eval_passthrough,
    Literal: _eval_passthrough,
}


def evaluate(directive: Directive, history: History, warn: Callable[[str], None] | None = None) -> Lookup:
    """
    Evaluate a parsed *directive* against *history*.

    Set operations tolerate bad indices and report them through *warn*; every other failure comes
    back as a failed :class:`Lookup`.
    """
    if isinstance(directive, (IdSetOp, ObjectSetOp)):
        return _eval_set_op(directive, history, warn or (lambda _msg: None))
    handler = _HANDLERS.get(type(directive))
    if handler is None:
        raise TypeError(f"Unhandled directive type: {type(directive).__name__}")
    return handler(directive, history)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
class PlaceholderResolver:
    """Resolve every top-level string argument of a step against the history so far."""

    def __init__(self, config: Settings | None = None):
        self._config = config or default_settings
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("Placeholder resolution: %s", message)

    def resolve_value(self, value: str, history: History) -> Any:
        """Resolve a single string; degrade rather than raise."""
        directive: Directive = Malformed(value, "Could not be parsed")
        try:
            directive = parse_placeholder(value, self._config.CACHE_PREFIX)
            outcome = evaluate(directive, history, self._warn)
        except Exception as exc:  # noqa: BLE001
            outcome = Lookup.fail(f"Error resolving {value!r}: {exc}")
        if outcome.ok:
            return outcome.value
        self._warn(outcome.error.message)
        return [] if isinstance(directive, ARRAY_DIRECTIVES + (Malformed,)) else None

    def resolve(self, args: Mapping[str, Any] | None, history: History) -> Dict[str, Any]:
        """
        Return a copy of *args* with directives replaced.

        Only string values are inspected; everything else passes through untouched.
        """
        self.warnings = []
        if not args:
            return {}
        resolved: Dict[str, Any] = {}
        for key, value in args.items():
            resolved[key] = self.resolve_value(value, history) if isinstance(value, str) else value
        if self.warnings:
            logger.warning(
                "%d placeholder(s) degraded while resolving %s", len(self.warnings), list(args)
            )
        return resolved
