"""Built-in tool registry: the fixed set of local operations the model may call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..errors import ToolError

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Coroutine[Any, Any, dict[str, Any]]]


@dataclass
class ToolResult:
    output: str
    is_error: bool = False


class ToolRegistry:
    """Registry of built-in tools with Anthropic-style tool schemas.

    Handlers return ``{"content": str}`` on success or ``{"error": str}`` on
    failure. ``execute`` never raises: every failure comes back as an error
    ``ToolResult`` so the loop can always answer a tool_use block.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._definitions: dict[str, dict[str, Any]] = {}

    def register(self, name: str, handler: ToolHandler, definition: dict[str, Any]) -> None:
        self._handlers[name] = handler
        self._definitions[name] = definition

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    def list_tools(self) -> list[str]:
        return list(self._handlers.keys())

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "description": defn.get("description", ""),
                "input_schema": defn.get("parameters", {"type": "object", "properties": {}}),
            }
            for name, defn in self._definitions.items()
        ]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        handler = self._handlers.get(name)
        if not handler:
            return ToolResult(output=f"Unknown tool: {name}", is_error=True)
        if not isinstance(arguments, dict):
            return ToolResult(output=f"Invalid input for {name}: expected an object", is_error=True)

        try:
            result = await handler(**arguments)
        except ToolError as e:
            return ToolResult(output=e.message, is_error=True)
        except TypeError as e:
            logger.info("Tool %s called with bad arguments: %s", name, e)
            return ToolResult(output=f"Invalid input for {name}: {e}", is_error=True)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return ToolResult(output=f"{name} failed: {e}", is_error=True)

        if "error" in result:
            logger.info("Tool %s returned an error: %.200s", name, result["error"])
            return ToolResult(output=str(result["error"]), is_error=True)
        return ToolResult(output=str(result.get("content", "")))


def register_default_tools(
    registry: ToolRegistry,
    working_dir: str | None = None,
    bash_timeout: int | None = None,
    max_output_chars: int | None = None,
) -> None:
    """Register all built-in tools."""
    from . import bash, grep, list_dir, output, read, search_files, write

    if max_output_chars:
        output.set_max_output_chars(max_output_chars)
    if bash_timeout:
        bash.set_timeout_cap(bash_timeout)

    for module in [bash, read, write, list_dir, search_files, grep]:
        handler = module.handle
        defn = module.DEFINITION
        if working_dir and hasattr(module, "set_working_dir"):
            module.set_working_dir(working_dir)
        registry.register(defn["name"], handler, defn)
