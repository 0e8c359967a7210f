"""
agent.tools.base - Tool interface shared by the registry and the handler.

A tool is anything with a `name`, a `schema` holding a function declaration
and a `call(args)` method. BaseTool derives the declaration from a Pydantic
input model; FunctionTool wraps a plain callable with an explicit schema.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError


def extract_function_declaration(schema: Any) -> Optional[dict[str, Any]]:
    """Return the function declaration inside a tool schema, or None.

    Accepts {"function_declaration": {...}}, {"functionDeclaration": {...}}
    and the list form {"function_declarations": [{...}]}.
    """
    if not isinstance(schema, dict):
        return None
    decl = schema.get("function_declaration") or schema.get("functionDeclaration")
    if decl is None:
        decls = schema.get("function_declarations") or schema.get("functionDeclarations")
        if isinstance(decls, list) and decls:
            decl = decls[0]
    if not isinstance(decl, dict) or not isinstance(decl.get("name"), str) or not decl["name"]:
        return None
    return decl


class BaseTool(ABC):
    """Abstract base for tools with a Pydantic-typed input."""

    name: str
    description: str

    @abstractmethod
    async def execute(self, **kwargs) -> Any:
        """Execute the tool with validated arguments."""
        ...

    @abstractmethod
    def get_schema(self) -> type[BaseModel]:
        """Return the Pydantic schema for this tool's input arguments."""
        ...

    @property
    def schema(self) -> dict[str, Any]:
        parameters = self.get_schema().model_json_schema()
        parameters.pop("title", None)
        return {
            "function_declaration": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            }
        }

    async def call(self, args: dict[str, Any]) -> Any:
        """Validate `args` against the schema, then execute."""
        try:
            parsed = self.get_schema().model_validate(args or {})
        except ValidationError as exc:
            raise ValueError(f"Invalid arguments for tool '{self.name}': {exc}") from exc
        return await self.execute(**parsed.model_dump())


class FunctionTool:
    """Wrap a plain (sync or async) callable taking one args dict."""

    def __init__(
        self,
        name: str,
        fn: Callable[[dict[str, Any]], Any],
        *,
        description: str = "",
        parameters: Optional[dict[str, Any]] = None,
    ):
        self.name = name
        self.description = description
        self._fn = fn
        self.schema = {
            "function_declaration": {
                "name": name,
                "description": description,
                "parameters": parameters or {"type": "object", "properties": {}},
            }
        }

    def call(self, args: dict[str, Any]) -> Any:
        return self._fn(args)

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self._fn)

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"
