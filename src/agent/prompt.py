"""
agent.prompt - System instruction, message formatting and response parsing.

Messages use the provider-neutral shape the LLM client port accepts:
    {"role": "user" | "model" | "function", "parts": [part, ...]}
where a part is {"text": ...}, {"function_call": {...}} or
{"function_response": {...}}.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from domain.models import ToolCall, ToolCallResult


def build_system_instruction(role: str, goals: Sequence[str]) -> str:
    """Role text followed by a numbered list of goals (if any)."""
    sections = []
    if role:
        sections.append(role.strip())
    if goals:
        numbered = "\n".join(f"{i}. {goal}" for i, goal in enumerate(goals, start=1))
        sections.append(f"Your goals:\n{numbered}")
    return "\n\n".join(sections)


def default_input_formatter(input: Any, context: Any = None) -> list[dict[str, Any]]:
    """Wrap the input as a single user message. Non-strings are JSON encoded."""
    if isinstance(input, str):
        text = input
    else:
        text = json.dumps(input, indent=2, ensure_ascii=False, default=str)
    return [{"role": "user", "parts": [{"text": text}]}]


def _first_candidate_parts(response: Any) -> list[dict[str, Any]]:
    if not isinstance(response, dict):
        return []
    candidates = response.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return list(content.get("parts") or [])


def default_response_processor(response: Any) -> str:
    """Concatenate all text parts of the first candidate."""
    return "".join(
        part["text"] for part in _first_candidate_parts(response)
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )


def extract_tool_calls(response: Any) -> list[ToolCall]:
    """Return the function calls requested in the first candidate."""
    calls = []
    for part in _first_candidate_parts(response):
        if not isinstance(part, dict):
            continue
        fc = part.get("function_call") or part.get("functionCall")
        if not fc:
            continue
        args = fc.get("args") or {}
        if isinstance(args, str):
            args = json.loads(args) if args.strip() else {}
        calls.append(ToolCall(name=fc.get("name", ""), args=dict(args), call_id=fc.get("id")))
    return calls


def tool_call_turn(response: Any, calls: Sequence[ToolCall]) -> dict[str, Any]:
    """The model's own turn, replayed into the follow-up request."""
    text_parts = [
        {"text": p["text"]} for p in _first_candidate_parts(response)
        if isinstance(p, dict) and p.get("text")
    ]
    call_parts = [
        {"function_call": {"name": c.name, "args": c.args, "id": c.call_id}}
        for c in calls
    ]
    return {"role": "model", "parts": text_parts + call_parts}


def tool_result_turn(results: Sequence[ToolCallResult]) -> dict[str, Any]:
    """Function-result turn carrying each tool's result or error."""
    return {
        "role": "function",
        "parts": [
            {"function_response": {
                "name": r.tool_name,
                "id": r.call_id,
                "response": r.as_response(),
            }}
            for r in results
        ],
    }
