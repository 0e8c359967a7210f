"""
domain.ports - Abstract interfaces (Protocols) for the system boundaries.

Using typing.Protocol (structural typing) instead of ABC: any class that
implements the methods satisfies the port without explicit inheritance.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LLMClientPort(Protocol):
    """Language-model client.

    request keys: contents, system_instruction, tools (optional),
    temperature, max_output_tokens, plus provider-specific extras.
    The response exposes response["candidates"][0]["content"]["parts"],
    each part either {"text": ...} or {"function_call": {"name", "args"}}.
    """

    async def generate_content(self, request: dict[str, Any]) -> dict[str, Any]: ...


@runtime_checkable
class AgentPort(Protocol):
    """What teams and the workflow engine need from an agent."""

    id: str
    name: str

    async def run(self, input: Any, context: Any = None) -> Any: ...


@runtime_checkable
class ToolPort(Protocol):
    """Anything with a name, a schema holding a function declaration, and call()."""

    name: str
    schema: dict[str, Any]

    def call(self, args: dict[str, Any]) -> Any: ...
