"""Tests for tool validation, registration and the retrying call handler."""
import asyncio

import pytest
from pydantic import BaseModel, Field

from agent.tools.base import BaseTool, FunctionTool, extract_function_declaration
from agent.tools.handler import ToolCallHandler
from agent.tools.registry import ToolRegistry, validate_tool
from agent.tools.web_search import WebSearchInput, WebSearchTool, parse_results
from domain.exceptions import ToolExecutionError, ToolValidationError
from domain.models import ToolCall


class EchoInput(BaseModel):
    text: str = Field(description="Text to echo")
    times: int = 1


class EchoTool(BaseTool):
    name = "echo"
    description = "Repeat text."

    def get_schema(self):
        return EchoInput

    async def execute(self, text, times=1, **kwargs):
        return text * times


class Flaky:
    """Fails `failures` times, then returns 'ok'."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def __call__(self, args):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"boom {self.calls}")
        return "ok"


# ---------------------------------------------------------------------------
# Declarations and validation
# ---------------------------------------------------------------------------

def test_extract_function_declaration_forms():
    decl = {"name": "t", "parameters": {}}
    assert extract_function_declaration({"function_declaration": decl}) == decl
    assert extract_function_declaration({"functionDeclaration": decl}) == decl
    assert extract_function_declaration({"function_declarations": [decl]}) == decl
    assert extract_function_declaration({"function_declaration": {"parameters": {}}}) is None
    assert extract_function_declaration(None) is None


def test_base_tool_schema_comes_from_pydantic_model():
    decl = EchoTool().schema["function_declaration"]
    assert decl["name"] == "echo"
    assert decl["parameters"]["required"] == ["text"]
    assert "title" not in decl["parameters"]


def test_base_tool_call_validates_arguments():
    tool = EchoTool()
    assert asyncio.run(tool.call({"text": "ab", "times": 2})) == "abab"
    with pytest.raises(ValueError):
        asyncio.run(tool.call({"times": 2}))


@pytest.mark.parametrize("tool", [
    FunctionTool("", lambda a: a),
    type("NoSchema", (), {"name": "x", "schema": {}, "call": lambda self, a: a})(),
    type("NoCall", (), {"name": "x", "schema": {"function_declaration": {"name": "x"}}, "call": None})(),
])
def test_malformed_tools_are_rejected(tool):
    with pytest.raises(ToolValidationError):
        validate_tool(tool)
    registry = ToolRegistry()
    with pytest.raises(ToolValidationError):
        registry.register(tool)
    assert len(registry) == 0


def test_registry_replaces_and_removes():
    registry = ToolRegistry([FunctionTool("a", lambda x: 1)])
    replacement = FunctionTool("a", lambda x: 2, description="second")
    registry.register(replacement)
    assert registry.get("a") is replacement
    assert registry.function_declarations()[0]["description"] == "second"

    registry.remove("a")
    assert "a" not in registry
    assert registry.lookup("a") is None
    with pytest.raises(KeyError):
        registry.remove("a")


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------

def test_retry_then_success_waits_linearly(no_sleep):
    flaky = Flaky(failures=2)
    handler = ToolCallHandler(retry_attempts=3, retry_delay=1.0, sleep=no_sleep)
    tools = {"flaky": FunctionTool("flaky", flaky)}

    results = asyncio.run(handler.handle_tool_calls([ToolCall("flaky", {}, "c1")], tools))

    assert flaky.calls == 3
    assert results[0].ok and results[0].result == "ok"
    assert results[0].call_id == "c1"
    assert no_sleep.delays == [1.0, 2.0]


def test_exhausted_retries_raise_tool_execution_error(no_sleep):
    flaky = Flaky(failures=10)
    handler = ToolCallHandler(retry_attempts=3, retry_delay=0.5, sleep=no_sleep)

    with pytest.raises(ToolExecutionError) as info:
        asyncio.run(handler._execute_with_retry(flaky, {}, tool_name="flaky"))

    assert flaky.calls == 3
    assert info.value.attempts == 3
    assert isinstance(info.value.cause, ConnectionError)
    assert no_sleep.delays == [0.5, 1.0]


def test_batch_isolates_failures_and_keeps_order(no_sleep):
    async def lookup(args):
        return {"city": args["city"], "temp": 21}

    tools = ToolRegistry([
        FunctionTool("weather", lookup),
        FunctionTool("broken", Flaky(failures=99)),
    ])
    handler = ToolCallHandler(retry_attempts=2, retry_delay=0.1, sleep=no_sleep)
    calls = [
        ToolCall("broken", {}, "1"),
        ToolCall("missing", {}, "2"),
        ToolCall("weather", {"city": "Oslo"}, "3"),
    ]

    results = asyncio.run(handler.handle_tool_calls(calls, tools))

    assert [r.tool_name for r in results] == ["broken", "missing", "weather"]
    assert results[0].error == "boom 2"
    assert "not found" in results[1].error
    assert results[2].result == {"city": "Oslo", "temp": 21}
    assert results[0].as_response() == {"error": "boom 2"}
    assert results[2].as_response() == {"result": {"city": "Oslo", "temp": 21}}


def test_handler_rejects_zero_attempts():
    with pytest.raises(ValueError):
        ToolCallHandler(retry_attempts=0)


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------

SAMPLE_PAGE = """
<div class="result">
  <a rel="nofollow" class="result__a" href="https://example.org/solar">Solar <b>power</b> basics</a>
  <a class="result__snippet" href="https://example.org/solar">How &amp; why panels work.</a>
</div>
<div class="result">
  <a rel="nofollow" class="result__a" href="https://example.org/wind">Wind energy</a>
  <a class="result__snippet" href="https://example.org/wind">Turbines explained.</a>
</div>
"""


def test_parse_results_strips_markup_and_limits():
    results = parse_results(SAMPLE_PAGE, max_results=5)
    assert results == [
        {"title": "Solar power basics", "url": "https://example.org/solar", "snippet": "How & why panels work."},
        {"title": "Wind energy", "url": "https://example.org/wind", "snippet": "Turbines explained."},
    ]
    assert len(parse_results(SAMPLE_PAGE, max_results=1)) == 1
    assert parse_results("", 5) == []


def test_web_search_uses_fetch_and_rejects_blank_query(monkeypatch):
    tool = WebSearchTool()
    monkeypatch.setattr(tool, "_fetch", lambda q: SAMPLE_PAGE)

    out = asyncio.run(tool.call({"query": "  renewable   energy ", "max_results": 1}))
    assert out["query"] == "renewable energy"
    assert len(out["results"]) == 1

    with pytest.raises(ValueError):
        asyncio.run(tool.call({"query": "   "}))


def test_web_search_schema_bounds():
    decl = WebSearchTool().schema["function_declaration"]
    assert decl["name"] == "web_search"
    assert decl["parameters"]["properties"]["max_results"]["maximum"] == 10
    with pytest.raises(ValueError):
        WebSearchInput(query="x", max_results=50)


def test_exception_without_message_still_reports_an_error(no_sleep):
    def times_out(args):
        raise TimeoutError()

    handler = ToolCallHandler(retry_attempts=1, sleep=no_sleep)
    results = asyncio.run(handler.handle_tool_calls(
        [ToolCall("slow", {}, "t1")], {"slow": FunctionTool("slow", times_out)},
    ))
    assert results[0].error == "TimeoutError()"
    assert not results[0].ok
