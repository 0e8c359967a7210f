"""
Shared fixtures: scripted LLM client and lightweight fake agents.

Run with: python -m pytest test_functionality -v
"""
import asyncio
import copy
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from application.events import EventBus


def text_response(text):
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def call_response(name, args=None, call_id=None, text=None):
    parts = [{"text": text}] if text else []
    parts.append({"function_call": {"name": name, "args": args or {}, "id": call_id}})
    return {"candidates": [{"content": {"role": "model", "parts": parts}}]}


class ScriptedLLMClient:
    """Returns queued responses in order; an Exception in the queue is raised."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests = []

    async def generate_content(self, request):
        self.requests.append(copy.deepcopy(request))
        if not self._responses:
            raise AssertionError("ScriptedLLMClient ran out of responses")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item


class FakeAgent:
    """AgentPort implementation recording start/finish order in a shared log."""

    def __init__(self, agent_id, log, output=None, error=None, delay=0.0):
        self.id = agent_id
        self.name = agent_id
        self.log = log
        self.output = output if output is not None else f"{agent_id}-output"
        self.error = error
        self.delay = delay
        self.inputs = []
        self.contexts = []

    async def run(self, input, context=None):
        self.inputs.append(input)
        self.contexts.append(context)
        self.log.append(("start", self.id))
        await asyncio.sleep(self.delay)
        if self.error is not None:
            self.log.append(("fail", self.id))
            raise self.error
        self.log.append(("end", self.id))
        return self.output(input) if callable(self.output) else self.output


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def record(bus):
    """Subscribe to every event; returns the list of (name, payload)."""
    events = []
    bus.subscribe("*", lambda e: events.append((e.name, e.payload)))
    return events


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep
