"""
infrastructure.llm.langchain_client - LLMClientPort over LangChain chat models.

Translates the provider-neutral request/response shape used by agents
to LangChain messages and back:

    user turn       → HumanMessage
    model turn      → AIMessage (function_call parts become tool_calls)
    function turn   → one ToolMessage per function_response part

Chat models are built lazily by an injected factory and cached per
(temperature, max tokens, extras) combination.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from domain.exceptions import LLMClientError

logger = logging.getLogger(__name__)

ModelFactory = Callable[..., BaseChatModel]

_REQUEST_KEYS = {"contents", "system_instruction", "tools", "temperature", "max_output_tokens"}


def _text_of(parts: list[dict[str, Any]]) -> str:
    return "\n".join(p["text"] for p in parts if isinstance(p.get("text"), str))


def _text_content(content: Any) -> str:
    """AIMessage.content is a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    chunks = []
    for block in content or []:
        if isinstance(block, str):
            chunks.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            chunks.append(block.get("text", ""))
    return "".join(chunks)


def to_langchain_messages(
    contents: list[dict[str, Any]],
    system_instruction: Optional[str] = None,
) -> list[BaseMessage]:
    """Convert request contents into LangChain messages."""
    messages: list[BaseMessage] = []
    if system_instruction:
        messages.append(SystemMessage(content=system_instruction))

    pending_ids: list[str] = []
    call_counter = 0
    for turn in contents:
        role = turn.get("role", "user")
        parts = turn.get("parts") or []

        if role == "model":
            tool_calls = []
            for part in parts:
                fc = part.get("function_call") or part.get("functionCall")
                if not fc:
                    continue
                call_id = fc.get("id") or f"call_{call_counter}"
                call_counter += 1
                tool_calls.append({
                    "name": fc["name"], "args": fc.get("args") or {}, "id": call_id,
                    "type": "tool_call",
                })
            pending_ids = [tc["id"] for tc in tool_calls]
            messages.append(AIMessage(content=_text_of(parts), tool_calls=tool_calls))

        elif role == "function":
            for i, part in enumerate(parts):
                fr = part.get("function_response") or part.get("functionResponse")
                if not fr:
                    continue
                call_id = fr.get("id") or (pending_ids[i] if i < len(pending_ids) else f"call_{i}")
                messages.append(ToolMessage(
                    content=json.dumps(fr.get("response"), ensure_ascii=False, default=str),
                    tool_call_id=call_id,
                    name=fr.get("name"),
                ))
            pending_ids = []

        else:
            messages.append(HumanMessage(content=_text_of(parts)))
    return messages


def to_openai_tool(declaration: dict[str, Any]) -> dict[str, Any]:
    """Function declaration → the tool dict accepted by bind_tools()."""
    return {
        "type": "function",
        "function": {
            "name": declaration["name"],
            "description": declaration.get("description", ""),
            "parameters": declaration.get("parameters") or {"type": "object", "properties": {}},
        },
    }


def function_declarations(tools: Any) -> list[dict[str, Any]]:
    """Flatten request["tools"] ([{"function_declarations": [...]}, ...])."""
    declarations = []
    for group in tools or []:
        declarations.extend(group.get("function_declarations") or group.get("functionDeclarations") or [])
    return declarations


def to_response(message: AIMessage) -> dict[str, Any]:
    """Convert an AIMessage into the candidates/content/parts response shape."""
    parts: list[dict[str, Any]] = []
    text = _text_content(message.content)
    if text:
        parts.append({"text": text})
    for tc in message.tool_calls or []:
        parts.append({"function_call": {"name": tc["name"], "args": tc.get("args") or {}, "id": tc.get("id")}})
    return {
        "candidates": [{
            "content": {"role": "model", "parts": parts},
            "finish_reason": (message.response_metadata or {}).get("finish_reason"),
        }],
        "usage_metadata": dict(message.usage_metadata or {}),
    }


class LangChainLLMClient:
    """Implements LLMClientPort (structural typing, no explicit inheritance)."""

    def __init__(self, model_factory: ModelFactory, provider: str = ""):
        self._model_factory = model_factory
        self._models: dict[str, BaseChatModel] = {}
        self.provider = provider

    def _model_for(self, temperature: Any, max_tokens: Any, extra: dict[str, Any]) -> BaseChatModel:
        key = json.dumps([temperature, max_tokens, extra], sort_keys=True, default=str)
        model = self._models.get(key)
        if model is None:
            kwargs = dict(extra)
            if temperature is not None:
                kwargs["temperature"] = temperature
            if max_tokens is not None:
                kwargs["max_tokens"] = max_tokens
            model = self._model_factory(**kwargs)
            self._models[key] = model
        return model

    async def generate_content(self, request: dict[str, Any]) -> dict[str, Any]:
        extra = {k: v for k, v in request.items() if k not in _REQUEST_KEYS}
        model = self._model_for(request.get("temperature"), request.get("max_output_tokens"), extra)

        declarations = function_declarations(request.get("tools"))
        runnable = model.bind_tools([to_openai_tool(d) for d in declarations]) if declarations else model

        messages = to_langchain_messages(request.get("contents") or [], request.get("system_instruction"))
        try:
            message = await runnable.ainvoke(messages)
        except Exception as exc:
            raise LLMClientError(f"{self.provider or 'LLM'} call failed: {exc}") from exc

        logger.debug(
            "LLM (%s) replied with %d tool call(s)", self.provider, len(message.tool_calls or []),
        )
        return to_response(message)
