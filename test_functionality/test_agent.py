"""Tests for the Agent run loop."""
import asyncio

import pytest

from agent.executor import Agent
from agent.prompt import build_system_instruction, extract_tool_calls
from agent.tools.base import FunctionTool
from agent.tools.handler import ToolCallHandler
from domain.exceptions import ConfigurationError, LLMClientError, ToolValidationError
from domain.models import AgentConfig, AgentStatus

from conftest import ScriptedLLMClient, call_response, text_response


def make_agent(client, bus, tools=None, **raw):
    config = AgentConfig.from_dict("analyst", {
        "name": "Analyst",
        "role": "You analyse data.",
        "goals": ["Be accurate", "Be brief"],
        **raw,
    })
    return Agent(config, client, tools=tools, bus=bus,
                 tool_handler=ToolCallHandler(retry_attempts=2, retry_delay=0))


def weather_tool(calls=None):
    def lookup(args):
        if calls is not None:
            calls.append(args)
        return {"city": args["city"], "temp": 18}

    return FunctionTool("weather", lookup, description="Current weather", parameters={
        "type": "object",
        "properties": {"city": {"type": "string"}},
        "required": ["city"],
    })


def test_system_instruction_numbers_goals():
    assert build_system_instruction("Role.", ["a", "b"]) == "Role.\n\nYour goals:\n1. a\n2. b"
    assert build_system_instruction("Role.", []) == "Role."


def test_plain_run_returns_text_and_records_history(bus, record):
    client = ScriptedLLMClient(text_response("42"))
    agent = make_agent(client, bus)

    assert asyncio.run(agent.run("What is the answer?")) == "42"

    request = client.requests[0]
    assert request["contents"] == [{"role": "user", "parts": [{"text": "What is the answer?"}]}]
    assert request["system_instruction"].startswith("You analyse data.")
    assert "tools" not in request
    assert request["temperature"] == 0.7

    assert agent.status is AgentStatus.IDLE
    history = agent.memory.get_history()
    assert len(history) == 1
    assert history[0].input == "What is the answer?"
    assert history[0].response == "42"

    names = [name for name, _ in record]
    assert names[0] == "statusChanged"
    assert names.index("runStarted") < names.index("inputFormatted") < names.index("llmResponseReceived")
    assert names[-1] == "runCompleted"
    assert record[-1][1]["response"] == "42"


def test_tool_round_trip_sends_results_back(bus, record):
    calls = []
    client = ScriptedLLMClient(
        call_response("weather", {"city": "Oslo"}, call_id="call-1", text="Checking."),
        text_response("It is 18 degrees in Oslo."),
    )
    agent = make_agent(client, bus, tools=[weather_tool(calls)])

    out = asyncio.run(agent.run("Weather in Oslo?"))

    assert out == "It is 18 degrees in Oslo."
    assert calls == [{"city": "Oslo"}]
    assert len(client.requests) == 2
    assert client.requests[0]["tools"][0]["function_declarations"][0]["name"] == "weather"

    follow_up = client.requests[1]["contents"]
    assert follow_up[0]["role"] == "user"
    assert follow_up[1] == {"role": "model", "parts": [
        {"text": "Checking."},
        {"function_call": {"name": "weather", "args": {"city": "Oslo"}, "id": "call-1"}},
    ]}
    assert follow_up[2] == {"role": "function", "parts": [
        {"function_response": {"name": "weather", "id": "call-1",
                               "response": {"result": {"city": "Oslo", "temp": 18}}}},
    ]}

    names = [name for name, _ in record]
    assert names.count("llmResponseReceived") == 2
    assert names.index("toolCallsDetected") < names.index("toolCallsHandled")


def test_unknown_tool_is_reported_to_the_model(bus):
    client = ScriptedLLMClient(
        call_response("nonexistent", {}, call_id="x"),
        text_response("Sorry, no tool for that."),
    )
    agent = make_agent(client, bus)

    assert asyncio.run(agent.run("hi")) == "Sorry, no tool for that."
    response = client.requests[1]["contents"][2]["parts"][0]["function_response"]["response"]
    assert "not found" in response["error"]


def test_llm_failure_sets_error_status_and_reraises(bus, record):
    client = ScriptedLLMClient(LLMClientError("quota exceeded"))
    agent = make_agent(client, bus)

    with pytest.raises(LLMClientError):
        asyncio.run(agent.run("hello"))

    assert agent.status is AgentStatus.ERROR
    assert agent.memory.get_history() == []
    name, payload = record[-1]
    assert name == "runError"
    assert isinstance(payload["error"], LLMClientError)
    statuses = [p["status"] for n, p in record if n == "statusChanged"]
    assert statuses == ["working", "error"]


def test_agent_recovers_after_error(bus):
    client = ScriptedLLMClient(RuntimeError("transient"), text_response("fine"))
    agent = make_agent(client, bus)
    with pytest.raises(RuntimeError):
        asyncio.run(agent.run("one"))
    assert asyncio.run(agent.run("two")) == "fine"
    assert agent.status is AgentStatus.IDLE


def test_context_is_per_run_and_not_stored(bus):
    seen = []

    def formatter(input, context):
        seen.append(dict(context.values))
        return [{"role": "user", "parts": [{"text": str(input)}]}]

    client = ScriptedLLMClient(text_response("a"), text_response("b"))
    config = AgentConfig.from_dict("a", {"role": "r"})
    agent = Agent(config, client, bus=bus, input_formatter=formatter, context={"team": "blue"})

    asyncio.run(agent.run("x", {"user": "ana"}))
    asyncio.run(agent.run("y"))

    assert seen == [{"team": "blue", "user": "ana"}, {"team": "blue"}]


def test_concurrent_runs_do_not_share_context(bus):
    seen = {}

    def formatter(input, context):
        seen[input] = context.get("job")
        return [{"role": "user", "parts": [{"text": input}]}]

    async def slow(request):
        await asyncio.sleep(0.01)
        return text_response(request["contents"][0]["parts"][0]["text"])

    class SlowClient:
        async def generate_content(self, request):
            return await slow(request)

    agent = Agent(AgentConfig.from_dict("a", {}), SlowClient(), bus=bus, input_formatter=formatter)

    async def main():
        return await asyncio.gather(agent.run("first", {"job": 1}), agent.run("second", {"job": 2}))

    assert asyncio.run(main()) == ["first", "second"]
    assert seen == {"first": 1, "second": 2}


def test_provider_overrides_are_applied(bus):
    client = ScriptedLLMClient(text_response("ok"))
    agent = make_agent(client, bus, provider="gemini", llm_config={
        "temperature": 0.2,
        "provider_overrides": {"gemini": {"top_p": 0.9}, "openai": {"seed": 1}},
    })
    asyncio.run(agent.run("go"))
    request = client.requests[0]
    assert request["temperature"] == 0.2
    assert request["top_p"] == 0.9
    assert "seed" not in request
    assert "provider_overrides" not in request


def test_add_and_remove_tool_update_declarations(bus, record):
    agent = make_agent(ScriptedLLMClient(), bus)
    agent.add_tool(weather_tool())
    assert agent.tools == ["weather"]
    assert agent.function_declarations[0]["name"] == "weather"

    assert agent.remove_tool("weather") is True
    assert agent.remove_tool("weather") is False
    assert agent.function_declarations == []
    assert [n for n, _ in record] == ["toolAdded", "toolRemoved"]


def test_invalid_tool_rejected_on_add(bus):
    agent = make_agent(ScriptedLLMClient(), bus)
    with pytest.raises(ToolValidationError):
        agent.add_tool(FunctionTool("", lambda a: a))


def test_missing_llm_client_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        Agent(AgentConfig.from_dict("a", {}), None)


def test_extract_tool_calls_accepts_camel_case_and_string_args():
    response = {"candidates": [{"content": {"parts": [
        {"functionCall": {"name": "weather", "args": '{"city": "Rome"}'}},
    ]}}]}
    calls = extract_tool_calls(response)
    assert calls[0].name == "weather"
    assert calls[0].args == {"city": "Rome"}
