"""
agent.tools.registry - Tool registration, validation and lookup.

Tools are validated when they are inserted, not when they are called:
a malformed tool raises ToolValidationError and never reaches the registry.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from agent.tools.base import extract_function_declaration
from domain.exceptions import ToolValidationError
from domain.ports import ToolPort

logger = logging.getLogger(__name__)


def validate_tool(tool: Any) -> dict[str, Any]:
    """Check a tool's shape. Returns its function declaration."""
    name = getattr(tool, "name", None)
    if not isinstance(name, str) or not name.strip():
        raise ToolValidationError(f"Tool {tool!r} has no name")
    decl = extract_function_declaration(getattr(tool, "schema", None))
    if decl is None:
        raise ToolValidationError(
            f"Tool '{name}' has no extractable function declaration in its schema"
        )
    if not callable(getattr(tool, "call", None)):
        raise ToolValidationError(f"Tool '{name}' has no callable 'call'")
    return decl


class ToolRegistry:
    """Manages tool registration. Re-registering a name replaces the tool."""

    def __init__(self, tools: list[ToolPort] | None = None):
        self._tools: dict[str, ToolPort] = {}
        self._declarations: dict[str, dict[str, Any]] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolPort) -> None:
        """Validate and register a tool by its name."""
        decl = validate_tool(tool)
        if tool.name in self._tools:
            logger.debug("Replacing tool: %s", tool.name)
        self._tools[tool.name] = tool
        self._declarations[tool.name] = decl
        logger.debug("Registered tool: %s", tool.name)

    def remove(self, name: str) -> ToolPort:
        if name not in self._tools:
            raise KeyError(f"Tool '{name}' not registered")
        self._declarations.pop(name, None)
        return self._tools.pop(name)

    def get(self, name: str) -> ToolPort:
        """Get a tool by name."""
        if name not in self._tools:
            raise KeyError(f"Tool '{name}' not registered")
        return self._tools[name]

    def lookup(self, name: str) -> ToolPort | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        """Return all registered tool names."""
        return list(self._tools.keys())

    def all(self) -> list[ToolPort]:
        return list(self._tools.values())

    def function_declarations(self) -> list[dict[str, Any]]:
        """Model-facing schema list, in registration order."""
        return list(self._declarations.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)
