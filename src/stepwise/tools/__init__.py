"""
Tool registry for the execution engine.

This module provides a registry class whose ``register`` decorator adds tools that can be looked up
by name.  Tools are plain functions or coroutines called with keyword arguments; they return a
``{"success", "data", "error"}`` envelope or any value, which the dispatcher wraps.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    TypedDict,
    get_type_hints,
)

from stepwise.config import Settings

logger = logging.getLogger(__name__)

LargeResultCheck = Callable[[Any, Settings], bool]


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool and the hints the dispatcher needs about it."""

    name: str
    fn: Callable[..., Any]
    description: str = ""
    # When a cached payload is fed to this tool's ``trades`` argument, hand over bare ids.
    trades_as_ids: bool = False
    # Tool-specific "is this result large enough to defer" check; None uses the size threshold.
    is_large: Optional[LargeResultCheck] = None


class ParameterInfo(TypedDict):
    """
    Information about a tool parameter.
    """

    type: str
    required: bool


class ToolSchema(TypedDict):
    """
    Schema for a tool function
    """

    description: str
    parameters: Mapping[str, ParameterInfo]


class ToolRegistry:
    """Named collection of tools; names must be unique."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def add(
        self,
        name: str,
        fn: Callable[..., Any],
        *,
        trades_as_ids: bool = False,
        is_large: Optional[LargeResultCheck] = None,
    ) -> ToolSpec:
        """
        Register *fn* under *name*.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s'", name)
        spec = ToolSpec(
            name=name,
            fn=fn,
            description=inspect.getdoc(fn) or "",
            trades_as_ids=trades_as_ids,
            is_large=is_large,
        )
        self._tools[name] = spec
        return spec

    def register(
        self,
        name: str,
        *,
        trades_as_ids: bool = False,
        is_large: Optional[LargeResultCheck] = None,
    ) -> Callable:
        """
        Register a tool function with the given name.

        The function is registered as a decorator, so it can be used like this:
            @registry.register("searchTrades")
            def search_trades(tradeType=None):
                # Do something
                return {"success": True, "data": {...}}

        Parameters
        ----------
        name: str
            The name of the tool.  This must be unique and is used to look up the
            function in the registry.
        trades_as_ids: bool
            Cached payloads bound to this tool's ``trades`` argument are reduced to ids.
        is_large: callable, optional
            Tool-specific check deciding whether a result may be deferred to the cache.

        Returns
        -------
        Callable
            A decorator that registers the function with the given name.

        Raises
        ------
        ValueError
            If a function with the same name is already registered.
        """

        def wrapper(fn: Callable) -> Callable:
            self.add(name, fn, trades_as_ids=trades_as_ids, is_large=is_large)
            return fn

        return wrapper

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> Mapping[str, ToolSchema]:
        """Extract parameter information from registered tools."""
        tool_schemas: Dict[str, ToolSchema] = {}
        for name, spec in self._tools.items():
            sig = inspect.signature(spec.fn)
            try:
                type_hints = get_type_hints(spec.fn)
            except (NameError, TypeError):
                type_hints = {}
            params = {}
            for param_name, param in sig.parameters.items():
                if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                    continue
                param_type = type_hints.get(param_name, "any")
                param_type_name = getattr(param_type, "__name__", str(param_type))
                params[param_name] = ParameterInfo(
                    type=param_type_name, required=param.default == inspect.Parameter.empty
                )
            tool_schemas[name] = {"description": spec.description, "parameters": params}
        return tool_schemas
