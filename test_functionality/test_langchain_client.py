"""Tests for the LangChain-backed LLM client (no network: models are faked)."""
import asyncio
import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from domain.exceptions import LLMClientError
from infrastructure.llm.langchain_client import (
    LangChainLLMClient,
    function_declarations,
    to_langchain_messages,
    to_openai_tool,
    to_response,
)


class FakeChatModel:
    """Duck-typed chat model recording what it was invoked with."""

    def __init__(self, reply=None, error=None, **kwargs):
        self.kwargs = kwargs
        self.reply = reply or AIMessage(content="hello")
        self.error = error
        self.bound_tools = None
        self.invocations = []

    def bind_tools(self, tools):
        self.bound_tools = tools
        return self

    async def ainvoke(self, messages):
        self.invocations.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


DECL = {"name": "web_search", "description": "Search", "parameters": {
    "type": "object", "properties": {"query": {"type": "string"}}, "required": ["query"],
}}


def test_messages_cover_all_roles():
    contents = [
        {"role": "user", "parts": [{"text": "find it"}]},
        {"role": "model", "parts": [
            {"text": "searching"},
            {"function_call": {"name": "web_search", "args": {"query": "x"}, "id": "a1"}},
            {"function_call": {"name": "web_search", "args": {"query": "y"}}},
        ]},
        {"role": "function", "parts": [
            {"function_response": {"name": "web_search", "id": "a1", "response": {"result": 1}}},
            {"function_response": {"name": "web_search", "response": {"error": "down"}}},
        ]},
    ]
    messages = to_langchain_messages(contents, "Be helpful.")

    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], HumanMessage) and messages[1].content == "find it"
    ai = messages[2]
    assert isinstance(ai, AIMessage)
    assert [tc["id"] for tc in ai.tool_calls] == ["a1", "call_1"]
    assert isinstance(messages[3], ToolMessage) and messages[3].tool_call_id == "a1"
    assert messages[4].tool_call_id == "call_1"
    assert json.loads(messages[4].content) == {"error": "down"}


def test_to_response_converts_text_and_tool_calls():
    message = AIMessage(
        content=[{"type": "text", "text": "Let me check."}],
        tool_calls=[{"name": "web_search", "args": {"query": "q"}, "id": "t1"}],
    )
    response = to_response(message)
    parts = response["candidates"][0]["content"]["parts"]
    assert parts[0] == {"text": "Let me check."}
    assert parts[1] == {"function_call": {"name": "web_search", "args": {"query": "q"}, "id": "t1"}}


def test_tool_declarations_flattened_for_bind_tools():
    assert function_declarations([{"function_declarations": [DECL]}, {"functionDeclarations": [DECL]}]) == [DECL, DECL]
    tool = to_openai_tool(DECL)
    assert tool["type"] == "function"
    assert tool["function"]["parameters"]["required"] == ["query"]


def test_generate_content_builds_and_caches_models():
    built = []

    def factory(**kwargs):
        model = FakeChatModel(**kwargs)
        built.append(model)
        return model

    client = LangChainLLMClient(factory, provider="fake")
    request = {
        "contents": [{"role": "user", "parts": [{"text": "hi"}]}],
        "system_instruction": "sys",
        "tools": [{"function_declarations": [DECL]}],
        "temperature": 0.3,
        "max_output_tokens": 100,
        "top_p": 0.9,
    }

    response = asyncio.run(client.generate_content(request))
    asyncio.run(client.generate_content(request))
    asyncio.run(client.generate_content({**request, "temperature": 0.9}))

    assert response["candidates"][0]["content"]["parts"] == [{"text": "hello"}]
    assert len(built) == 2
    assert built[0].kwargs == {"temperature": 0.3, "max_tokens": 100, "top_p": 0.9}
    assert built[0].bound_tools[0]["function"]["name"] == "web_search"
    assert isinstance(built[0].invocations[0][0], SystemMessage)


def test_provider_errors_are_wrapped():
    client = LangChainLLMClient(lambda **kw: FakeChatModel(error=RuntimeError("401 unauthorized")), provider="openai")
    with pytest.raises(LLMClientError) as info:
        asyncio.run(client.generate_content({"contents": [{"role": "user", "parts": [{"text": "x"}]}]}))
    assert "401" in str(info.value)
    assert isinstance(info.value.__cause__, RuntimeError)


def test_build_llm_rejects_unknown_provider():
    from infrastructure.llm.llm_builder import build_llm

    with pytest.raises(ValueError):
        build_llm(provider="watson", model="x")
