"""
agent.memory - Per-agent bounded history plus a key/value scratchpad.

History is a plain list of HistoryEntry trimmed FIFO to max_history_length.
The scratchpad never evicts. Every mutation is announced on the bus;
the *_async variants await listener side effects via emit_async().
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from application.events import (
    HISTORY_UPDATED,
    MEMORY_CLEARED,
    MEMORY_FORGOTTEN,
    MEMORY_UPDATED,
    EventBus,
)
from domain.models import HistoryEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_LENGTH = 20

_MISSING = object()


class MemoryStore:
    """Per-agent memory.

    NOT global: each agent gets its own instance. The bus may be shared.
    """

    def __init__(
        self,
        max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH,
        bus: EventBus | None = None,
        agent_id: str | None = None,
    ):
        if max_history_length < 1:
            raise ValueError("max_history_length must be at least 1")
        self._max_history_length = max_history_length
        self._bus = bus or EventBus()
        self._agent_id = agent_id
        self._history: list[HistoryEntry] = []
        self._store: dict[str, Any] = {}

    @property
    def max_history_length(self) -> int:
        return self._max_history_length

    @property
    def bus(self) -> EventBus:
        return self._bus

    def __len__(self) -> int:
        return len(self._history)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _append(self, entry: HistoryEntry | dict[str, Any]) -> HistoryEntry:
        if isinstance(entry, dict):
            entry = HistoryEntry(
                input=entry.get("input"),
                response=entry.get("response"),
                timestamp=entry.get("timestamp"),
            )
        if entry.timestamp is None:
            entry = replace(entry, timestamp=datetime.now(timezone.utc))
        self._history.append(entry)
        self._trim()
        return entry

    def _trim(self) -> None:
        if len(self._history) > self._max_history_length:
            self._history = self._history[-self._max_history_length:]

    def add_to_history(self, entry: HistoryEntry | dict[str, Any]) -> HistoryEntry:
        """Append an entry, evicting the oldest once the bound is exceeded."""
        entry = self._append(entry)
        self._bus.emit(HISTORY_UPDATED, self._history_payload())
        return entry

    async def add_to_history_async(self, entry: HistoryEntry | dict[str, Any]) -> HistoryEntry:
        entry = self._append(entry)
        await self._bus.emit_async(HISTORY_UPDATED, self._history_payload())
        return entry

    def get_history(self, limit: Optional[int] = None) -> list[HistoryEntry]:
        """Return the last `limit` entries (all retained entries by default)."""
        if limit is None:
            limit = self._max_history_length
        if limit <= 0:
            return []
        return self._history[-limit:]

    def get_history_range(self, start: int, end: Optional[int] = None) -> list[HistoryEntry]:
        return self._history[start:end]

    def _history_payload(self) -> dict[str, Any]:
        return {"agent": self._agent_id, "history": list(self._history)}

    # ------------------------------------------------------------------
    # Key/value scratchpad
    # ------------------------------------------------------------------

    def _set(self, key: str, value: Any) -> Optional[dict[str, Any]]:
        old = self._store.get(key, _MISSING)
        if old is not _MISSING and (old is value or old == value):
            return None
        self._store[key] = value
        return {
            "agent": self._agent_id,
            "key": key,
            "value": value,
            "oldValue": None if old is _MISSING else old,
        }

    def remember(self, key: str, value: Any) -> None:
        """Store a value. Writing the value already stored emits nothing."""
        payload = self._set(key, value)
        if payload is not None:
            self._bus.emit(MEMORY_UPDATED, payload)

    async def remember_async(self, key: str, value: Any) -> None:
        payload = self._set(key, value)
        if payload is not None:
            await self._bus.emit_async(MEMORY_UPDATED, payload)

    def recall(self, key: str, default: Any = None) -> Any:
        return self._store.get(key, default)

    def keys(self) -> list[str]:
        return list(self._store)

    def _pop(self, key: str) -> Optional[dict[str, Any]]:
        if key not in self._store:
            return None
        value = self._store.pop(key)
        return {"agent": self._agent_id, "key": key, "value": value}

    def forget(self, key: str) -> bool:
        """Remove a key. Returns True if something was removed."""
        payload = self._pop(key)
        if payload is None:
            return False
        self._bus.emit(MEMORY_FORGOTTEN, payload)
        return True

    async def forget_async(self, key: str) -> bool:
        payload = self._pop(key)
        if payload is None:
            return False
        await self._bus.emit_async(MEMORY_FORGOTTEN, payload)
        return True

    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Clear history and scratchpad."""
        self._history.clear()
        self._store.clear()
        self._bus.emit(MEMORY_CLEARED, {"agent": self._agent_id})

    async def clear_async(self) -> None:
        self._history.clear()
        self._store.clear()
        await self._bus.emit_async(MEMORY_CLEARED, {"agent": self._agent_id})
