"""
Recognise placeholder directives in step arguments.

:func:`parse_placeholder` turns a raw string into one member of a closed set of directive types.
Recognition is kept apart from evaluation (see :mod:`stepwise.engine.resolver`) so a new kind only
needs a dataclass here, a branch in the parser and an entry in the resolver's handler table.

Recognised forms, by precedence:

* ``EXTRACT_{i|LAST}.{path}``
* ``MERGE_|UNIQUE_|INTERSECT_`` + ``TRADE_IDS_|TRADES_`` + ``{i}_{j}...``
* ``SLICE_{i|LAST}.{path}.{start}.{end}``
* ``FILTER_{i|LAST}.{path}.{property}.{value}``
* ``SORT_{i|LAST}.{path}.{property}.{asc|desc}``
* ``LAST_RESULT`` / ``RESULT_{i}``
* ``EXTRACT_TRADE_IDS[_{i}]`` / ``EXTRACT_TRADES[_{i}]``
* cache keys (passed through for the dispatcher)
* anything else is a literal
"""

import re
from dataclasses import dataclass
from typing import (
    Any,
    Optional,
    Tuple,
    Union,
)

# ``None`` as a source index means "the last executed step".
Source = Optional[int]


@dataclass(frozen=True)
class ExtractField:
    source: Source
    path: str


@dataclass(frozen=True)
class IdSetOp:
    op: str  # merge | unique | intersect
    indices: Tuple[int, ...]


@dataclass(frozen=True)
class ObjectSetOp:
    op: str  # merge | unique | intersect
    indices: Tuple[int, ...]


@dataclass(frozen=True)
class Slice:
    source: Source
    path: str
    start: int
    end: int


@dataclass(frozen=True)
class Filter:
    source: Source
    path: str
    prop: str
    value: str


@dataclass(frozen=True)
class Sort:
    source: Source
    path: str
    prop: str
    direction: str


@dataclass(frozen=True)
class ResultRef:
    source: Source


@dataclass(frozen=True)
class ExtractIds:
    source: Source


@dataclass(frozen=True)
class ExtractTrades:
    source: Source


@dataclass(frozen=True)
class CacheKeyRef:
    key: str


@dataclass(frozen=True)
class Malformed:
    text: str
    reason: str


@dataclass(frozen=True)
class Literal:
    value: Any


Directive = Union[
    ExtractField,
    IdSetOp,
    ObjectSetOp,
    Slice,
    Filter,
    Sort,
    ResultRef,
    ExtractIds,
    ExtractTrades,
    CacheKeyRef,
    Malformed,
    Literal,
]

# Directives whose evaluation yields a list; these degrade to ``[]``.
ARRAY_DIRECTIVES = (ExtractField, IdSetOp, ObjectSetOp, Slice, Filter, Sort, ExtractIds, ExtractTrades)

_SRC = r"(\d+|LAST)"
_EXTRACT_RE = re.compile(rf"^EXTRACT_{_SRC}\.(.+)$")
_SET_OP_RE = re.compile(r"^(MERGE|UNIQUE|INTERSECT)_(TRADE_IDS|TRADES)_(.+)$")
_SLICE_RE = re.compile(rf"^SLICE_{_SRC}\.(.+)\.(\d+)\.(\d+)$")
# The field path is lazy and the value is pinned to a single component or a signed number, so
# decimals such as ``>100.5`` stay in the value while nested paths stay in the field.
_FILTER_RE = re.compile(
    rf"^FILTER_{_SRC}\.(.+?)\.([^.]+)\.((?:[<>]=?|[!=]=)?-?\d+(?:\.\d+)?|[^.]+)$"
)
_SORT_RE = re.compile(rf"^SORT_{_SRC}\.(.+)\.([^.]+)\.(asc|desc)$")
_RESULT_RE = re.compile(r"^RESULT_(\d+)$")
_EXTRACT_IDS_RE = re.compile(r"^EXTRACT_TRADE_IDS(?:_(\d+))?$")
_EXTRACT_TRADES_RE = re.compile(r"^EXTRACT_TRADES(?:_(\d+))?$")


def _source(token: str) -> Source:
    return None if token == "LAST" else int(token)


def _optional_index(token: str | None) -> Source:
    return None if token is None else int(token)


def parse_placeholder(value: str, cache_prefix: str | None = None) -> Directive:
    """
    Classify *value* as a directive.

    Parameters
    ----------
    value:
        A raw string argument value.
    cache_prefix:
        Prefix of result-cache keys; matching strings become :class:`CacheKeyRef`.

    Returns
    -------
    Directive
        Never raises; unrecognisable directive-shaped strings come back as :class:`Malformed`.
    """
    if value.startswith("EXTRACT_") and "." in value:
        match = _EXTRACT_RE.match(value)
        if not match:
            return Malformed(
                value, "Expected format: EXTRACT_0.field.path or EXTRACT_LAST.field.path"
            )
        return ExtractField(_source(match.group(1)), match.group(2))

    if value.startswith(("MERGE_", "UNIQUE_", "INTERSECT_")):
        match = _SET_OP_RE.match(value)
        if not match:
            return Malformed(value, "Unknown array operation")
        indices = tuple(int(part) for part in match.group(3).split("_") if part.isdigit())
        if not indices:
            return Malformed(value, "No result indices given")
        kind = IdSetOp if match.group(2) == "TRADE_IDS" else ObjectSetOp
        return kind(match.group(1).lower(), indices)

    if value.startswith("SLICE_"):
        match = _SLICE_RE.match(value)
        if not match:
            return Malformed(value, "Expected: SLICE_0.trades.0.5")
        src, path, start, end = match.groups()
        return Slice(_source(src), path, int(start), int(end))

    if value.startswith("FILTER_"):
        match = _FILTER_RE.match(value)
        if not match:
            return Malformed(value, "Expected: FILTER_0.trades.type.win")
        src, path, prop, expected = match.groups()
        return Filter(_source(src), path, prop, expected)

    if value.startswith("SORT_"):
        match = _SORT_RE.match(value)
        if not match:
            return Malformed(value, "Expected: SORT_0.trades.amount.desc")
        src, path, prop, direction = match.groups()
        return Sort(_source(src), path, prop, direction)

    if value == "LAST_RESULT":
        return ResultRef(None)

    match = _RESULT_RE.match(value)
    if match:
        return ResultRef(int(match.group(1)))

    if value.startswith("EXTRACT_TRADE_IDS"):
        match = _EXTRACT_IDS_RE.match(value)
        if not match:
            return Malformed(value, "Expected: EXTRACT_TRADE_IDS or EXTRACT_TRADE_IDS_0")
        return ExtractIds(_optional_index(match.group(1)))

    if value.startswith("EXTRACT_TRADES"):
        match = _EXTRACT_TRADES_RE.match(value)
        if not match:
            return Malformed(value, "Expected: EXTRACT_TRADES or EXTRACT_TRADES_0")
        return ExtractTrades(_optional_index(match.group(1)))

    if cache_prefix and value.startswith(cache_prefix):
        return CacheKeyRef(value)

    return Literal(value)
