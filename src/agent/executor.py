"""
agent.executor - Agent execution engine.

The Agent runs one think -> act -> observe loop per run() call:
format input, call the model, execute any requested tools (with retry,
via ToolCallHandler), feed the results back for a second model call,
record the outcome in memory. No global state: the run context is a
parameter, never stored on the agent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from agent.memory import DEFAULT_MAX_HISTORY_LENGTH, MemoryStore
from agent.prompt import (
    build_system_instruction,
    default_input_formatter,
    default_response_processor,
    extract_tool_calls,
    tool_call_turn,
    tool_result_turn,
)
from agent.tools.handler import ToolCallHandler
from agent.tools.registry import ToolRegistry
from application.context import RunContext
from application.events import (
    INPUT_FORMATTED,
    LLM_RESPONSE_RECEIVED,
    RUN_COMPLETED,
    RUN_ERROR,
    RUN_STARTED,
    STATUS_CHANGED,
    TOOL_ADDED,
    TOOL_CALLS_DETECTED,
    TOOL_CALLS_HANDLED,
    TOOL_REMOVED,
    EventBus,
)
from domain.exceptions import ConfigurationError
from domain.models import AgentConfig, AgentStatus, HistoryEntry
from domain.ports import LLMClientPort, ToolPort

logger = logging.getLogger(__name__)

DEFAULT_LLM_CONFIG: dict[str, Any] = {
    "temperature": 0.7,
    "max_output_tokens": 1024,
}

InputFormatter = Callable[[Any, RunContext], list[dict[str, Any]]]
ResponseProcessor = Callable[[dict[str, Any]], Any]
ProviderConfigHook = Callable[[dict[str, Any]], dict[str, Any]]


def apply_provider_overrides(provider: Optional[str]) -> ProviderConfigHook:
    """Default hook: layer llm_config["provider_overrides"][provider] on top."""

    def hook(config: dict[str, Any]) -> dict[str, Any]:
        overrides = config.pop("provider_overrides", None) or {}
        if provider and isinstance(overrides.get(provider), dict):
            config.update(overrides[provider])
        return config

    return hook


class Agent:
    """An LLM-backed worker with tools and memory.

    Constructed by factory.py with all dependencies injected. Status moves
    idle -> working -> (idle | error) and only through _set_status().
    """

    def __init__(
        self,
        config: AgentConfig,
        llm_client: LLMClientPort,
        *,
        tools: list[ToolPort] | None = None,
        bus: EventBus | None = None,
        memory: MemoryStore | None = None,
        tool_handler: ToolCallHandler | None = None,
        input_formatter: InputFormatter | None = None,
        response_processor: ResponseProcessor | None = None,
        provider_config_hook: ProviderConfigHook | None = None,
        context: Any = None,
    ):
        if llm_client is None:
            raise ConfigurationError(f"Agent '{config.agent_id}' requires an LLM client")

        self._config = config
        self._llm_client = llm_client
        self._bus = bus or EventBus()
        self._memory = memory or MemoryStore(
            max_history_length=config.max_history_length or DEFAULT_MAX_HISTORY_LENGTH,
            bus=self._bus,
            agent_id=config.agent_id,
        )
        self._tool_handler = tool_handler or ToolCallHandler()
        self._input_formatter = input_formatter or default_input_formatter
        self._response_processor = response_processor or default_response_processor
        self._provider_config_hook = provider_config_hook or apply_provider_overrides(config.provider)
        self._base_context = RunContext.coerce(context)
        self._status = AgentStatus.IDLE

        self._tools = ToolRegistry()
        for tool in tools or []:
            self._tools.register(tool)
        self._function_declarations = self._tools.function_declarations()

    # ------------------------------------------------------------------
    # Identity / read-only views
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._config.agent_id

    @property
    def name(self) -> str:
        return self._config.name or self._config.agent_id

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def role(self) -> str:
        return self._config.role

    @property
    def goals(self) -> tuple[str, ...]:
        return self._config.goals

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def memory(self) -> MemoryStore:
        return self._memory

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def tools(self) -> list[str]:
        return self._tools.names()

    @property
    def function_declarations(self) -> list[dict[str, Any]]:
        return list(self._function_declarations)

    def __repr__(self) -> str:
        return f"Agent(id={self.id!r}, status={self._status.value!r})"

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _set_status(self, status: AgentStatus) -> None:
        previous = self._status
        self._status = status
        self._bus.emit(STATUS_CHANGED, {
            "agent": self.id,
            "status": status.value,
            "previousStatus": previous.value,
        })

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def add_tool(self, tool: ToolPort) -> None:
        """Validate and register a tool, replacing one with the same name."""
        self._tools.register(tool)
        self._function_declarations = self._tools.function_declarations()
        self._bus.emit(TOOL_ADDED, {"agent": self.id, "tool": tool.name})

    def remove_tool(self, name: str) -> bool:
        """Remove a tool by name. Returns False if it was not registered."""
        if name not in self._tools:
            return False
        self._tools.remove(name)
        self._function_declarations = self._tools.function_declarations()
        self._bus.emit(TOOL_REMOVED, {"agent": self.id, "tool": name})
        return True

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def _llm_config(self) -> dict[str, Any]:
        config = {**DEFAULT_LLM_CONFIG, **self._config.llm_config}
        return self._provider_config_hook(config)

    def _build_request(self, contents: list[dict[str, Any]], system_instruction: str) -> dict[str, Any]:
        request: dict[str, Any] = {
            "contents": contents,
            "system_instruction": system_instruction,
        }
        if self._function_declarations:
            request["tools"] = [{"function_declarations": list(self._function_declarations)}]
        request.update(self._llm_config())
        return request

    async def run(self, input: Any, context: Any = None) -> Any:
        """Process one input and return the processed model response.

        Raises whatever the model client, a formatter or the response
        processor raised, after setting status to error and emitting runError.
        Tool failures do not raise: they are reported back to the model.
        """
        if self._llm_client is None:
            raise ConfigurationError(f"Agent '{self.id}' has no LLM client")

        ctx = self._base_context.merge(context)
        self._set_status(AgentStatus.WORKING)
        self._bus.emit(RUN_STARTED, {"agent": self.id, "input": input, "context": ctx})
        logger.info("Agent '%s' run started (request=%s)", self.id, ctx.request_id)

        try:
            messages = self._input_formatter(input, ctx)
            self._bus.emit(INPUT_FORMATTED, {"agent": self.id, "messages": messages})

            system_instruction = build_system_instruction(self.role, self.goals)
            response = await self._llm_client.generate_content(
                self._build_request(messages, system_instruction)
            )
            self._bus.emit(LLM_RESPONSE_RECEIVED, {"agent": self.id, "response": response})

            calls = extract_tool_calls(response)
            if calls:
                self._bus.emit(TOOL_CALLS_DETECTED, {"agent": self.id, "calls": calls})
                logger.info(
                    "Agent '%s' executing %d tool call(s): %s",
                    self.id, len(calls), ", ".join(c.name for c in calls),
                )
                results = await self._tool_handler.handle_tool_calls(calls, self._tools)
                self._bus.emit(TOOL_CALLS_HANDLED, {"agent": self.id, "results": results})

                follow_up = messages + [tool_call_turn(response, calls), tool_result_turn(results)]
                response = await self._llm_client.generate_content(
                    self._build_request(follow_up, system_instruction)
                )
                self._bus.emit(LLM_RESPONSE_RECEIVED, {"agent": self.id, "response": response})

            output = self._response_processor(response)
        except asyncio.CancelledError as exc:
            self._set_status(AgentStatus.ERROR)
            self._bus.emit(RUN_ERROR, {"agent": self.id, "input": input, "error": exc})
            logger.warning("Agent '%s' run cancelled", self.id)
            raise
        except Exception as exc:
            self._set_status(AgentStatus.ERROR)
            self._bus.emit(RUN_ERROR, {"agent": self.id, "input": input, "error": exc})
            logger.error("Agent '%s' run failed: %s", self.id, exc)
            raise

        self._memory.add_to_history(HistoryEntry(input=input, response=output))
        self._set_status(AgentStatus.IDLE)
        self._bus.emit(RUN_COMPLETED, {"agent": self.id, "input": input, "response": output})
        logger.info("Agent '%s' run completed", self.id)
        return output
