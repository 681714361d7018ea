"""
Dispatches tool calls registered in a :class:`~stepwise.tools.ToolRegistry` and wraps errors.

Besides plain dispatch the dispatcher owns the cache-key indirection: argument values that are
result-cache keys are swapped for the cached payload (and the entry is consumed), and a caller may
ask for a large result to be parked in the cache by passing ``returnCacheKey=True``.
"""

import inspect
import json
import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
)

from stepwise.config import (
    Settings,
    settings as default_settings,
)
from stepwise.core.cache import ResultCache
from stepwise.core.schema import (
    ExecutionHistoryEntry,
    ToolResult,
)
from stepwise.engine.extraction import ids_of
from stepwise.tools import (
    ToolRegistry,
    ToolSpec,
)

logger = logging.getLogger(__name__)

RETURN_CACHE_KEY = "returnCacheKey"

# Argument names that always receive a list, even when the cached payload is gone.
_LIST_ARGUMENTS = ("trades", "tradeIds")


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


def _summary_items(data: Any) -> Optional[List[Any]]:
    if isinstance(data, dict):
        if isinstance(data.get("tradeIds"), list):
            return data["tradeIds"]
        if isinstance(data.get("trades"), list):
            return data["trades"]
    if isinstance(data, list):
        return data
    return None


def _coerce_result(name: str, outcome: Any) -> ToolResult:
    if isinstance(outcome, ToolResult):
        result = outcome
    elif isinstance(outcome, Mapping) and isinstance(outcome.get("success"), bool):
        result = ToolResult.model_validate(dict(outcome))
    else:
        result = ToolResult(success=True, data=outcome)
    return result.model_copy(update={"tool": name})


class ToolDispatcher:
    """
    Uniform invocation point for named tools.

    Parameters
    ----------
    registry:
        Tools that may be called.
    cache:
        Store for deferred results.  A fresh :class:`ResultCache` is created when omitted.
    config:
        Settings for thresholds and the cache prefix.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        cache: ResultCache | None = None,
        config: Settings | None = None,
    ):
        self.registry = registry
        self.config = config or default_settings
        self.cache = cache if cache is not None else ResultCache(self.config)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def execute_function_call(
        self,
        name: str,
        args: Mapping[str, Any] | None = None,
        preserve_cache: bool = True,
    ) -> ToolResult:
        """
        Look up *name* in the registry and invoke it with *args*.

        Parameters
        ----------
        name:
            The registered tool name.
        args:
            Keyword arguments for the tool.  Cache keys are materialised first; the
            ``returnCacheKey`` control flag is consumed here and never reaches the tool.
        preserve_cache:
            When False the full result is always returned, even if deferral was requested.

        Returns
        -------
        ToolResult
            Never raises: unknown tools, bad arguments and tool exceptions become failures.
        """
        spec = self.registry.get(name)
        if spec is None:
            logger.error("Unknown function requested: %s", name)
            return ToolResult(success=False, error=f"Unknown function: {name}", tool=name)

        call_args = dict(args or {})
        defer = call_args.pop(RETURN_CACHE_KEY, False) is True

        try:
            # Bind first so a bad call leaves any referenced cache entries in place.
            self._check_arguments(spec, call_args)
            call_args = self.materialize_args(call_args, spec)
            result = await self._invoke(spec, call_args)
        except ToolExecutionError as exc:
            return ToolResult(success=False, error=str(exc), tool=name)

        if not result.success:
            logger.error("Function %s failed: %s", name, result.error)
            return result

        if defer and preserve_cache and self._is_large(spec, result.data):
            return self._defer(name, result.data)
        return result

    def materialize_args(self, args: Mapping[str, Any], spec: ToolSpec) -> Dict[str, Any]:
        """Replace cache-key values (at any dict depth) with the cached payload."""
        processed: Dict[str, Any] = {}
        for key, value in args.items():
            if self.cache.is_key(value):
                logger.info("Found cache key in argument %s: %s", key, value)
                processed[key] = self._consume(key, value, spec)
            elif isinstance(value, dict):
                processed[key] = self.materialize_args(value, spec)
            else:
                processed[key] = value
        return processed

    def cleanup_cache_keys(self, history: Sequence[ExecutionHistoryEntry]) -> int:
        """Drop cache entries referenced anywhere in *history* plus any expired ones."""
        removed = 0
        for entry in history:
            for key in self._find_keys([entry.resolved_args, entry.result]):
                if self.cache.delete(key):
                    removed += 1
        removed += self.cache.clear_expired()
        if removed:
            logger.info("Cleaned up %d cache entr%s after batch", removed, "y" if removed == 1 else "ies")
        return removed

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    @staticmethod
    def _check_arguments(spec: ToolSpec, args: Dict[str, Any]) -> None:
        try:
            inspect.signature(spec.fn).bind(**args)
        except TypeError as exc:
            # Argument mismatch: give the caller a clean message.
            raise ToolExecutionError(f"Invalid arguments for tool '{spec.name}': {exc}") from exc

    async def _invoke(self, spec: ToolSpec, args: Dict[str, Any]) -> ToolResult:
        try:
            logger.debug("Executing tool '%s' with args=%s", spec.name, args)
            outcome = spec.fn(**args)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", spec.name)
            raise ToolExecutionError(f"Tool '{spec.name}' raised an error: {exc}") from exc

        try:
            return _coerce_result(spec.name, outcome)
        except ValueError as exc:
            raise ToolExecutionError(f"Tool '{spec.name}' returned a malformed result: {exc}") from exc

    def _consume(self, arg_name: str, key: str, spec: ToolSpec) -> Any:
        entry = self.cache.take(key)
        if entry is None:
            logger.warning("Failed to retrieve cached data for key: %s", key)
            if arg_name in _LIST_ARGUMENTS:
                logger.warning("Setting empty array for missing %s cache key", arg_name)
                return []
            return key

        data = entry.data
        if isinstance(data, dict) and data.get("success") is True and "data" in data:
            data = data["data"]
        value = self._unwrap(arg_name, data, spec)
        logger.info("Retrieved and cleared cached data for argument %s", arg_name)
        return value

    @staticmethod
    def _unwrap(arg_name: str, data: Any, spec: ToolSpec) -> Any:
        if arg_name == "trades":
            if isinstance(data, dict) and isinstance(data.get("trades"), list):
                return ids_of(data["trades"]) if spec.trades_as_ids else data["trades"]
            if isinstance(data, list):
                return data
            logger.warning("Cached data for trades doesn't contain expected trades array")
            return []

        if arg_name == "tradeIds":
            if isinstance(data, dict) and isinstance(data.get("trades"), list):
                return ids_of(data["trades"])
            if isinstance(data, dict) and isinstance(data.get("tradeIds"), list):
                return data["tradeIds"]
            if isinstance(data, list):
                return data
            logger.warning("Cached data for tradeIds doesn't contain expected tradeIds array")
            return []

        return data

    def _is_large(self, spec: ToolSpec, data: Any) -> bool:
        if spec.is_large is not None:
            try:
                return bool(spec.is_large(data, self.config))
            except Exception:  # noqa: BLE001
                logger.exception("Size check for '%s' failed; returning the full result", spec.name)
                return False
        try:
            return len(json.dumps(data, default=str)) > self.config.LARGE_RESULT_THRESHOLD
        except (TypeError, ValueError):
            return False

    def _defer(self, name: str, data: Any) -> ToolResult:
        key = self.cache.store(name, data)
        items = _summary_items(data)
        count = len(items) if items is not None else 1
        summary: Dict[str, Any] = {
            "info": f"Result cached for {name}. Contains {count} result{'' if count == 1 else 's'}",
            "count": count,
        }
        if items:
            summary["snippet"] = items[: self.config.CACHE_SNIPPET_SIZE]
        logger.info("Cached large result for %s, returning cache key", name)
        return ToolResult(
            success=True,
            data={"cached": True, "cacheKey": key, "summary": summary},
            tool=name,
        )

    def _find_keys(self, values: Iterable[Any]) -> List[str]:
        found: List[str] = []
        stack = list(values)
        while stack:
            value = stack.pop()
            if self.cache.is_key(value):
                found.append(value)
            elif isinstance(value, dict):
                stack.extend(value.values())
            elif isinstance(value, list):
                stack.extend(value)
        return found
