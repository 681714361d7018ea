"""Checks a completed step's result against its declarative validation rule."""

import logging
from typing import (
    Any,
    Mapping,
)

from stepwise.core.schema import ValidationRule
from stepwise.engine.extraction import lookup_path

logger = logging.getLogger(__name__)


def result_count(result: Any) -> int:
    """Count of a result: list length, then ``trades``, then ``data`` list length, then ``count``."""
    if isinstance(result, list):
        return len(result)
    if isinstance(result, dict):
        if isinstance(result.get("trades"), list):
            return len(result["trades"])
        if isinstance(result.get("data"), list):
            return len(result["data"])
        if result.get("count") is not None:
            return int(result["count"])
    return 0


def _strict_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


class ResultValidator:
    """Apply a :class:`ValidationRule`; every present sub-check must pass."""

    def _check(self, result: Any, rule: ValidationRule) -> bool:
        if rule.min_count is not None:
            count = result_count(result)
            if count < rule.min_count:
                logger.warning("Validation failed: count %d < minCount %d", count, rule.min_count)
                return False

        if rule.max_count is not None:
            count = result_count(result)
            if count > rule.max_count:
                logger.warning("Validation failed: count %d > maxCount %d", count, rule.max_count)
                return False

        if rule.has_field is not None:
            found = lookup_path(result, rule.has_field, "VALIDATION")
            if not found.ok or found.value is None:
                logger.warning("Validation failed: missing field %s", rule.has_field)
                return False

        if rule.field_value is not None:
            field, expected = rule.field_value.field, rule.field_value.value
            found = lookup_path(result, field, "VALIDATION")
            if not found.ok or not _strict_equal(found.value, expected):
                logger.warning(
                    "Validation failed: field %s value %r !== expected %r",
                    field,
                    found.value,
                    expected,
                )
                return False

        return True

    def validate(self, result: Any, rule: ValidationRule | Mapping[str, Any]) -> bool:
        """Return whether *result* satisfies *rule*; errors count as failure."""
        try:
            if not isinstance(rule, ValidationRule):
                rule = ValidationRule.model_validate(rule)
            return self._check(result, rule)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error validating result: %s", exc)
            return False


def validate_result(result: Any, rule: ValidationRule | Mapping[str, Any]) -> bool:
    """Module-level shortcut for :meth:`ResultValidator.validate`."""
    return ResultValidator().validate(result, rule)
