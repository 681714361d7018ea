"""
Array and transform operators used by placeholder directives.

All functions here are pure: they take already extracted lists and return new lists without
touching their inputs.
"""

import functools
import json
from datetime import (
    date,
    datetime,
)
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    List,
    Sequence,
)

from stepwise.engine.extraction import identifier_of

SORT_DIRECTIONS = ("asc", "desc")


def _dedupe_key(value: Any) -> Hashable:
    try:
        hash(value)
    except TypeError:
        return json.dumps(value, sort_keys=True, default=str)
    return value


def display_string(value: Any) -> str:
    """String form of a JSON value as a JavaScript-minded caller would write it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> float | None:
    """Coerce *value* to a float; booleans and unparsable values give None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


# ---------------------------------------------------------------------------
# Identifier collections
# ---------------------------------------------------------------------------
def merge_ids(id_lists: Sequence[List[Any]]) -> List[Any]:
    """Concatenate identifier lists, keeping duplicates."""
    return [ident for ids in id_lists for ident in ids]


def unique_ids(ids: List[Any]) -> List[Any]:
    """Drop repeated identifiers, keeping first occurrences in order."""
    seen: Dict[Hashable, None] = {}
    out: List[Any] = []
    for ident in ids:
        key = _dedupe_key(ident)
        if key not in seen:
            seen[key] = None
            out.append(ident)
    return out


def intersect_ids(id_lists: Sequence[List[Any]]) -> List[Any]:
    """Identifiers present in every list, in first-list order."""
    if not id_lists:
        return []
    others = [{_dedupe_key(ident) for ident in ids} for ids in id_lists[1:]]
    return [
        ident
        for ident in unique_ids(id_lists[0])
        if all(_dedupe_key(ident) in other for other in others)
    ]


# ---------------------------------------------------------------------------
# Object collections, keyed by identifier
# ---------------------------------------------------------------------------
def merge_objects(object_lists: Sequence[List[Any]]) -> List[Any]:
    """Concatenate object lists, keeping duplicates."""
    return [obj for objects in object_lists for obj in objects]


def unique_objects(objects: List[Any]) -> List[Any]:
    """Keep the first object for each identifier; objects without one are dropped."""
    seen: Dict[Hashable, None] = {}
    out: List[Any] = []
    for obj in objects:
        ident = identifier_of(obj)
        if not ident:
            continue
        key = _dedupe_key(ident)
        if key not in seen:
            seen[key] = None
            out.append(obj)
    return out


def intersect_objects(object_lists: Sequence[List[Any]]) -> List[Any]:
    """Objects from the first list whose identifier appears in every list."""
    if not object_lists:
        return []
    others = [
        {_dedupe_key(identifier_of(obj)) for obj in objects if identifier_of(obj)}
        for objects in object_lists[1:]
    ]
    return [
        obj
        for obj in unique_objects(object_lists[0])
        if all(_dedupe_key(identifier_of(obj)) in other for other in others)
    ]


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------
def slice_items(items: List[Any], start: int, end: int) -> List[Any]:
    """Return ``items[start:end]``."""
    return list(items[start:end])


def _numeric_predicate(op: str, threshold: float) -> Callable[[Any], bool]:
    compare = {
        ">=": lambda a: a >= threshold,
        "<=": lambda a: a <= threshold,
        ">": lambda a: a > threshold,
        "<": lambda a: a < threshold,
    }[op]

    def predicate(field_value: Any) -> bool:
        number = to_number(field_value)
        return number is not None and compare(number)

    return predicate


def _equals(field_value: Any, expected: str) -> bool:
    return field_value == expected or display_string(field_value) == expected


def make_filter_predicate(value: str) -> Callable[[Any], bool]:
    """
    Build the predicate a FILTER directive applies to each element's property value.

    ``>=``, ``<=``, ``>`` and ``<`` compare numerically; ``==`` and ``!=`` compare by value or string
    form; ``win`` and ``loss`` also accept positive or negative amounts.  Anything else is an
    exact match.
    """
    for op in (">=", "<=", ">", "<"):
        if value.startswith(op):
            threshold = to_number(value[len(op) :])
            if threshold is None:
                return lambda _field_value: False
            return _numeric_predicate(op, threshold)

    if value.startswith("!="):
        expected = value[2:]
        return lambda field_value: not _equals(field_value, expected)
    if value.startswith("=="):
        expected = value[2:]
        return lambda field_value: _equals(field_value, expected)

    if value == "win":
        return lambda field_value: field_value == "win" or (_is_number(field_value) and field_value > 0)
    if value == "loss":
        return lambda field_value: field_value == "loss" or (_is_number(field_value) and field_value < 0)

    return lambda field_value: _equals(field_value, value)


def filter_items(items: List[Any], prop: str, value: str) -> List[Any]:
    """Keep elements whose *prop* satisfies the FILTER *value* expression."""
    predicate = make_filter_predicate(value)
    return [
        item for item in items if isinstance(item, dict) and predicate(item.get(prop))
    ]


def _as_datetime(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time())


def _compare(a: Any, b: Any) -> int:
    if _is_number(a) and _is_number(b):
        return (a > b) - (a < b)
    if isinstance(a, date) and isinstance(b, date):
        a_dt, b_dt = _as_datetime(a), _as_datetime(b)
        return (a_dt > b_dt) - (a_dt < b_dt)
    a_str, b_str = display_string(a), display_string(b)
    return (a_str > b_str) - (a_str < b_str)


def sort_items(items: List[Any], prop: str, direction: str = "asc") -> List[Any]:
    """
    Stable sort by *prop*; ``desc`` is exactly the reverse of the ascending order.

    Numbers compare numerically, dates chronologically and everything else by string form.
    """
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"Unknown sort direction: {direction}")

    def value_of(item: Any) -> Any:
        return item.get(prop) if isinstance(item, dict) else None

    ordered = sorted(items, key=functools.cmp_to_key(lambda a, b: _compare(value_of(a), value_of(b))))
    if direction == "desc":
        ordered.reverse()
    return ordered
