"""
application.events - In-process publish/subscribe notification bus.

Listeners subscribe to an exact event name or to a wildcard ("mem*", "*").
Every listener runs inside its own try/except so one failing observer
never stops the others or the operation that emitted the event.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

# ── Event names ───────────────────────────────────────────────
STATUS_CHANGED = "statusChanged"
RUN_STARTED = "runStarted"
INPUT_FORMATTED = "inputFormatted"
LLM_RESPONSE_RECEIVED = "llmResponseReceived"
TOOL_CALLS_DETECTED = "toolCallsDetected"
TOOL_CALLS_HANDLED = "toolCallsHandled"
RUN_COMPLETED = "runCompleted"
RUN_ERROR = "runError"
TOOL_ADDED = "toolAdded"
TOOL_REMOVED = "toolRemoved"
HISTORY_UPDATED = "historyUpdated"
MEMORY_UPDATED = "memoryUpdated"
MEMORY_FORGOTTEN = "memoryForgotten"
MEMORY_CLEARED = "memoryCleared"

WORKFLOW_STARTED = "workflowStarted"
JOB_STARTED = "jobStarted"
JOB_COMPLETED = "jobCompleted"
JOB_FAILED = "jobFailed"
WORKFLOW_COMPLETED = "workflowCompleted"


@dataclass(frozen=True)
class Event:
    name: str
    payload: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[Event], Union[None, Awaitable[None]]]


class EventBus:
    """Publish/subscribe with exact-name and prefix-wildcard subscriptions."""

    def __init__(self) -> None:
        self._exact: dict[str, list[Listener]] = {}
        self._wildcard: dict[str, list[Listener]] = {}  # prefix -> listeners
        self._pending: set[asyncio.Task] = set()  # strong refs until done

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        if not callable(listener):
            raise TypeError("listener must be callable")
        if name.endswith("*"):
            table, key = self._wildcard, name[:-1]
        else:
            table, key = self._exact, name
        table.setdefault(key, []).append(listener)

        def unsubscribe() -> None:
            listeners = table.get(key, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                table.pop(key, None)

        return unsubscribe

    def once(self, name: str, listener: Listener) -> Callable[[], None]:
        """Subscribe a listener that removes itself after the first event."""

        def wrapper(event: Event):
            unsubscribe()
            return listener(event)

        unsubscribe = self.subscribe(name, wrapper)
        return unsubscribe

    def listener_count(self, name: str) -> int:
        return len(self._listeners_for(name))

    def clear(self) -> None:
        self._exact.clear()
        self._wildcard.clear()

    def _listeners_for(self, name: str) -> list[Listener]:
        # Snapshot so listeners may (un)subscribe while being dispatched.
        listeners = list(self._exact.get(name, []))
        for prefix, group in list(self._wildcard.items()):
            if name.startswith(prefix):
                listeners.extend(group)
        return listeners

    def emit(self, name: str, payload: Any = None) -> None:
        """Invoke exact listeners, then matching wildcard listeners."""
        event = Event(name, payload)
        for listener in self._listeners_for(name):
            try:
                result = listener(event)
            except Exception:
                logger.exception("Listener for '%s' failed", name)
                continue
            if inspect.isawaitable(result):
                self._schedule(name, result)

    async def emit_async(self, name: str, payload: Any = None) -> None:
        """Run every listener concurrently; return once all of them settled."""
        event = Event(name, payload)
        listeners = self._listeners_for(name)
        if listeners:
            await asyncio.gather(*(self._invoke(name, l, event) for l in listeners))

    @staticmethod
    async def _invoke(name: str, listener: Listener, event: Event) -> None:
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Listener for '%s' failed", name)

    @property
    def pending_tasks(self) -> int:
        return len(self._pending)

    def _schedule(self, name: str, awaitable: Awaitable[Any]) -> None:
        """Run a coroutine listener from synchronous emit()."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "Async listener for '%s' dropped: no running event loop "
                "(use emit_async)", name,
            )
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        async def runner() -> None:
            try:
                await awaitable
            except Exception:
                logger.exception("Listener for '%s' failed", name)

        task = loop.create_task(runner())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
