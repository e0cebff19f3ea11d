"""Tool registry used by the response engine."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from .exceptions import ToolError
from .models import ToolCall, ToolResult, ToolSpec

logger = logging.getLogger(__name__)

ToolFunc = Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class Tool:
    """A named function the chat backend may invoke."""

    spec: ToolSpec
    func: ToolFunc

    @property
    def name(self) -> str:
        return self.spec.name


class ToolRegistry:
    """
    Name-keyed registry of tools.

    :meth:`invoke` never raises: unknown tools and failing tools come back as
    ``{"error": "<message>"}`` results so the backend can explain the failure
    in natural language.

    Usage:
        >>> registry = ToolRegistry()
        >>> @registry.register("echo", description="Echo the arguments back")
        ... def echo(args):
        ...     return args
        >>> registry.invoke(ToolCall(name="echo", args={"x": 1})).result
        {'x': 1}
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(
        self,
        name: str,
        *,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Callable[[ToolFunc], ToolFunc]:
        """Decorator registering ``func`` under ``name``."""

        def decorator(func: ToolFunc) -> ToolFunc:
            spec = ToolSpec(
                name=name,
                description=description or (inspect.getdoc(func) or ""),
                parameters=parameters or {"type": "object", "properties": {}},
            )
            self.add(Tool(spec=spec, func=func))
            return func

        return decorator

    def add(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def specs(self) -> List[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def invoke(self, call: ToolCall) -> ToolResult:
        """Run the requested tool and capture its result or failure as data."""
        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning("Backend requested unknown tool '%s'", call.name)
            return ToolResult(name=call.name, result={"error": f"Unknown tool: {call.name}"}, call_id=call.call_id)

        logger.info("Invoking tool %s with %s", call.name, call.args)
        try:
            result = tool.func(dict(call.args))
            if inspect.isawaitable(result):
                result = asyncio.run(_resolve(result))
            result = json.loads(json.dumps(result, default=str))
        except ToolError as exc:
            logger.info("Tool %s reported an error: %s", call.name, exc)
            return _error_result(call, exc)
        except Exception as exc:
            logger.exception("Tool %s failed", call.name)
            return _error_result(call, exc)

        return ToolResult(name=call.name, result=result, call_id=call.call_id)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))


def _error_result(call: ToolCall, exc: Exception) -> ToolResult:
    return ToolResult(name=call.name, result={"error": str(exc) or type(exc).__name__}, call_id=call.call_id)


async def _resolve(awaitable: Any) -> Any:
    return await awaitable


def get_current_time(args: Dict[str, Any]) -> Dict[str, str]:
    """Get the current local date and time."""
    now = datetime.now()
    return {
        "date": now.strftime("%A, %B %d, %Y"),
        "time": now.strftime("%I:%M %p").lstrip("0"),
    }


def default_registry() -> ToolRegistry:
    """Registry pre-loaded with the built-in tools."""
    registry = ToolRegistry()
    registry.register("getCurrentTime", description="Get the current local date and time.")(get_current_time)
    return registry
