"""
Pure lookups over prior step results.

Nothing in here logs or raises for missing data.  Every helper returns a :class:`Lookup` carrying
either a value or a :class:`ResolutionError`; callers at the top of the resolver, condition evaluator
and validator decide how to degrade.
"""

from typing import (
    Any,
    List,
    NamedTuple,
    Optional,
)

ID_FIELDS = ("id", "tradeId", "trade_id")


class ResolutionError(NamedTuple):
    """Why a lookup could not produce a value."""

    message: str


class Lookup(NamedTuple):
    """Outcome of a lookup: ``value`` when ``error`` is None."""

    value: Any = None
    error: Optional[ResolutionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def fail(cls, message: str) -> "Lookup":
        return cls(None, ResolutionError(message))


def identifier_of(item: Any) -> Any:
    """Return the first truthy ``id``/``tradeId``/``trade_id`` of a mapping, else None."""
    if not isinstance(item, dict):
        return None
    for name in ID_FIELDS:
        value = item.get(name)
        if value:
            return value
    return None


def ids_of(items: List[Any]) -> List[Any]:
    """Map objects to their identifiers, dropping those without one."""
    return [ident for ident in (identifier_of(item) for item in items) if ident]


def _available(current: Any) -> str:
    if isinstance(current, dict):
        return ", ".join(str(key) for key in current)
    return ""


def lookup_path(obj: Any, path: str, context: str = "RESULT") -> Lookup:
    """
    Walk a dot-separated *path* through dicts and lists.

    ``length`` on a list or string yields its length, an integer component indexes a list, and an
    ``id`` component over a list maps every element to its identifier and ends the walk.
    """
    parts = path.split(".")
    current = obj

    for i, part in enumerate(parts):
        where = ".".join([context, *parts[:i]])
        if isinstance(current, list):
            if part == "id":
                return Lookup(ids_of(current))
            if part == "length":
                current = len(current)
                continue
            if part.isdigit() and int(part) < len(current):
                current = current[int(part)]
                continue
            return Lookup.fail(
                f"Cannot access field '{part}' in {where}: list of {len(current)} items"
            )
        if isinstance(current, dict):
            if part in current:
                current = current[part]
                continue
            return Lookup.fail(
                f"Cannot access field '{part}' in {where}. "
                f"Available fields: {_available(current)}"
            )
        if isinstance(current, str) and part == "length":
            current = len(current)
            continue
        return Lookup.fail(
            f"Cannot access field '{part}' in {where}: value is {type(current).__name__}"
        )

    return Lookup(current)


def extract_trade_ids(result: Any) -> Lookup:
    """Pull identifiers out of the result shapes tools commonly produce."""
    if result is None or result == [] or result == {}:
        return Lookup([])

    if isinstance(result, list):
        if not isinstance(result[0], dict):
            return Lookup(list(result))
        return Lookup(ids_of(result))

    if isinstance(result, dict):
        if isinstance(result.get("tradeIds"), list):
            return Lookup(list(result["tradeIds"]))
        if isinstance(result.get("trades"), list):
            return Lookup(ids_of(result["trades"]))
        data = result.get("data")
        if isinstance(data, dict):
            if isinstance(data.get("trades"), list):
                return Lookup(ids_of(data["trades"]))
            if isinstance(data.get("tradeIds"), list):
                return Lookup(list(data["tradeIds"]))
        ident = identifier_of(result)
        if ident:
            return Lookup([ident])
        return Lookup.fail(f"Could not extract trade IDs from result with keys: {_available(result)}")

    return Lookup.fail(f"Could not extract trade IDs from {type(result).__name__}")


def extract_trades(result: Any) -> Lookup:
    """Pull the list of trade objects out of a result, tolerating several shapes."""
    if result is None or result == {}:
        return Lookup([])

    if isinstance(result, list):
        return Lookup(result)

    if isinstance(result, dict):
        if isinstance(result.get("trades"), list):
            return Lookup(result["trades"])
        data = result.get("data")
        if isinstance(data, dict) and isinstance(data.get("trades"), list):
            return Lookup(data["trades"])
        if identifier_of(result):
            return Lookup([result])
        return Lookup.fail(f"Could not extract trades from result with keys: {_available(result)}")

    return Lookup.fail(f"Could not extract trades from {type(result).__name__}")
