"""
Evaluates the ``condition`` string attached to a step.

References such as ``RESULT_0.count`` or ``LAST_RESULT.trades.length`` are replaced by the JSON form
of the value they point at, then the expression is evaluated with a small comparator grammar:
``>=``, ``<=``, ``>``, ``<``, ``===``, ``!==``, ``==``, ``!=``, the literals ``true``/``false``,
leading ``!`` negation and plain truthiness.  ``&&`` and ``||`` combine comparisons.

Evaluation never raises; any error means the step is skipped.
"""

import json
import logging
import re
from typing import (
    Any,
    Callable,
    List,
    Sequence,
)

from stepwise.core.schema import ExecutionHistoryEntry
from stepwise.engine.extraction import lookup_path
from stepwise.engine.operators import (
    display_string,
    to_number,
)

logger = logging.getLogger(__name__)

_FIELD_REF_RE = re.compile(r"(?:RESULT_(\d+)|LAST_RESULT)(?:\.([A-Za-z0-9_.]+))?")

_SENTINEL = object()


def _strict_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def _loose_equal(a: Any, b: Any) -> bool:
    a_num, b_num = to_number(a), to_number(b)
    if a_num is not None and b_num is not None:
        return a_num == b_num
    if a is None or b is None:
        return a is None and b is None
    return display_string(a) == display_string(b)


def _ordered(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def apply(a: Any, b: Any) -> bool:
        a_num, b_num = to_number(a), to_number(b)
        if a_num is None or b_num is None:
            raise TypeError(f"Cannot order {a!r} and {b!r}")
        return compare(a_num, b_num)

    return apply


# Scan order matters: two-character operators before their one-character prefixes.
_COMPARATORS: List[tuple[str, Callable[[Any, Any], bool]]] = [
    (">=", _ordered(lambda a, b: a >= b)),
    ("<=", _ordered(lambda a, b: a <= b)),
    (">", _ordered(lambda a, b: a > b)),
    ("<", _ordered(lambda a, b: a < b)),
    ("===", _strict_equal),
    ("!==", lambda a, b: not _strict_equal(a, b)),
    ("==", _loose_equal),
    ("!=", lambda a, b: not _loose_equal(a, b)),
]


def parse_value(text: str) -> Any:
    """Parse an operand as JSON, then as a number, else return the bare string."""
    trimmed = text.strip()
    try:
        return json.loads(trimmed)
    except ValueError:
        pass
    number = to_number(trimmed)
    return number if number is not None else trimmed


def _unquoted_positions(text: str, token: str) -> List[int]:
    """Offsets of *token* in *text* that lie outside double-quoted JSON strings."""
    positions: List[int] = []
    in_string = escaped = False
    i = 0
    while i < len(text):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif text.startswith(token, i):
            positions.append(i)
            i += len(token)
            continue
        i += 1
    return positions


def _split_unquoted(text: str, token: str) -> List[str]:
    parts: List[str] = []
    start = 0
    for position in _unquoted_positions(text, token):
        parts.append(text[start:position])
        start = position + len(token)
    parts.append(text[start:])
    return parts


def evaluate_simple(condition: str) -> bool:
    """
    Evaluate one comparison (no ``&&``/``||``) whose references are already substituted.

    Operators inside quoted string values (``"R>2"``) are not treated as operators.
    """
    condition = condition.strip()
    for op, compare in _COMPARATORS:
        positions = _unquoted_positions(condition, op)
        if positions:
            left, right = condition[: positions[0]], condition[positions[0] + len(op) :]
            return bool(compare(parse_value(left), parse_value(right)))

    if condition == "true":
        return True
    if condition == "false":
        return False
    if condition.startswith("!"):
        return not parse_value(condition[1:])
    return bool(parse_value(condition))


def evaluate_expression(condition: str) -> bool:
    """Evaluate a substituted condition; ``||`` binds looser than ``&&``."""
    return any(
        all(evaluate_simple(term) for term in _split_unquoted(clause, "&&"))
        for clause in _split_unquoted(condition, "||")
    )


class ConditionEvaluator:
    """Decide whether a step runs, given the history so far."""

    def substitute(
        self,
        condition: str,
        history: Sequence[ExecutionHistoryEntry],
        last_result: Any,
    ) -> str:
        """Replace every result reference in *condition* with its JSON-serialised value."""

        def replace(match: re.Match) -> str:
            index, path = match.group(1), match.group(2)
            if index is not None:
                position = int(index)
                if not 0 <= position < len(history):
                    logger.warning(
                        "Condition references RESULT_%d but only %d result(s) exist",
                        position,
                        len(history),
                    )
                    return "null"
                target = history[position].result
                context = f"CONDITION_{position}"
            else:
                target = last_result
                context = "CONDITION_LAST"

            value: Any = target
            if path:
                found = lookup_path(target, path, context)
                if not found.ok:
                    logger.warning("Condition field lookup failed: %s", found.error.message)
                    return "null"
                value = found.value
            return json.dumps(value, default=str)

        return _FIELD_REF_RE.sub(replace, condition)

    def evaluate(
        self,
        condition: str,
        history: Sequence[ExecutionHistoryEntry],
        last_result: Any = _SENTINEL,
    ) -> bool:
        """
        Return whether *condition* holds.

        Parameters
        ----------
        condition:
            The step's condition string.
        history:
            Entries recorded so far.
        last_result:
            Result of the most recent executed step; derived from *history* when omitted.
        """
        if last_result is _SENTINEL:
            last_result = next(
                (entry.result for entry in reversed(history) if not entry.skipped), None
            )
        try:
            substituted = self.substitute(condition, history, last_result)
            outcome = evaluate_expression(substituted)
            logger.debug("Condition %r -> %r -> %s", condition, substituted, outcome)
            return outcome
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error evaluating condition %r: %s", condition, exc)
            return False


def evaluate_condition(
    condition: str, history: Sequence[ExecutionHistoryEntry], last_result: Any = _SENTINEL
) -> bool:
    """Module-level shortcut for :meth:`ConditionEvaluator.evaluate`."""
    return ConditionEvaluator().evaluate(condition, history, last_result)
