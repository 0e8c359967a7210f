"""
agent.tools.handler - Executes model-issued tool calls with bounded retry.

Each call in a batch is isolated: an unknown tool or a tool that keeps
failing produces an error entry for that call only, and the batch goes on.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Union

from agent.tools.registry import ToolRegistry
from domain.exceptions import ToolExecutionError
from domain.models import ToolCall, ToolCallResult
from domain.ports import ToolPort

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds; wait before attempt n+1 is delay * n

Sleep = Callable[[float], Awaitable[Any]]


class ToolCallHandler:
    """Tool invocation manager shared by the agents of one factory."""

    def __init__(
        self,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Sleep = asyncio.sleep,
    ):
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def handle_tool_calls(
        self,
        calls: list[ToolCall],
        tools: Union[ToolRegistry, Mapping[str, ToolPort]],
    ) -> list[ToolCallResult]:
        """Run every call in order. Never raises for a single failing call."""
        results: list[ToolCallResult] = []
        for call in calls:
            tool = tools.lookup(call.name) if isinstance(tools, ToolRegistry) else tools.get(call.name)
            fn = getattr(tool, "call", None) if tool is not None else None
            if not callable(fn):
                logger.warning("Model requested unknown tool '%s'", call.name)
                results.append(ToolCallResult(
                    tool_name=call.name,
                    error=f"Tool '{call.name}' not found or not callable",
                    call_id=call.call_id,
                ))
                continue

            try:
                value = await self._execute_with_retry(fn, call.args, tool_name=call.name)
            except ToolExecutionError as exc:
                logger.error("%s", exc)
                results.append(ToolCallResult(
                    tool_name=call.name, error=str(exc.cause) or repr(exc.cause),
                    call_id=call.call_id,
                ))
                continue
            results.append(ToolCallResult(
                tool_name=call.name, result=value, call_id=call.call_id,
            ))
        return results

    async def _execute_with_retry(
        self,
        fn: Callable[[dict[str, Any]], Any],
        params: dict[str, Any],
        *,
        tool_name: str = "<tool>",
    ) -> Any:
        """Call fn(params), retrying with linear backoff until attempts run out."""
        attempt = 1
        while True:
            try:
                result = fn(params)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                if attempt >= self.retry_attempts:
                    raise ToolExecutionError(tool_name, attempt, exc) from exc
                delay = self.retry_delay * attempt
                logger.warning(
                    "Tool '%s' failed (attempt %d/%d): %s, retrying in %.2fs",
                    tool_name, attempt, self.retry_attempts, exc, delay,
                )
                await self._sleep(delay)
                attempt += 1
