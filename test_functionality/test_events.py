"""Tests for application.events.EventBus."""
import asyncio

from application.events import EventBus, MEMORY_CLEARED, MEMORY_UPDATED, HISTORY_UPDATED


def test_exact_listeners_run_before_wildcards():
    bus = EventBus()
    calls = []
    bus.subscribe("run*", lambda e: calls.append("wildcard"))
    bus.subscribe("runStarted", lambda e: calls.append("exact"))
    bus.emit("runStarted", {"agent": "a"})
    assert calls == ["exact", "wildcard"]


def test_listener_receives_event_name_and_payload():
    bus = EventBus()
    seen = []
    bus.subscribe("*", seen.append)
    bus.emit("toolAdded", {"tool": "web_search"})
    assert seen[0].name == "toolAdded"
    assert seen[0].payload == {"tool": "web_search"}


def test_mem_wildcard_matches_memory_events_only():
    bus = EventBus()
    names = []
    bus.subscribe("mem*", lambda e: names.append(e.name))
    bus.emit(MEMORY_UPDATED, {})
    bus.emit(MEMORY_CLEARED, {})
    bus.emit(HISTORY_UPDATED, {})
    assert names == [MEMORY_UPDATED, MEMORY_CLEARED]


def test_failing_listener_does_not_stop_others():
    bus = EventBus()
    calls = []

    def broken(event):
        raise RuntimeError("observer bug")

    bus.subscribe("statusChanged", broken)
    bus.subscribe("statusChanged", lambda e: calls.append("second"))
    bus.subscribe("*", lambda e: calls.append("wildcard"))
    bus.emit("statusChanged", {"status": "working"})
    assert calls == ["second", "wildcard"]


def test_unsubscribe():
    bus = EventBus()
    calls = []
    unsubscribe = bus.subscribe("runCompleted", calls.append)
    unsubscribe()
    bus.emit("runCompleted")
    assert calls == []
    assert bus.listener_count("runCompleted") == 0
    unsubscribe()  # second call is a no-op


def test_once_fires_a_single_time():
    bus = EventBus()
    calls = []
    bus.once("runError", calls.append)
    bus.emit("runError", 1)
    bus.emit("runError", 2)
    assert [e.payload for e in calls] == [1]


def test_emit_async_waits_for_all_listeners():
    bus = EventBus()
    done = []

    async def slow(event):
        await asyncio.sleep(0.01)
        done.append("slow")

    async def broken(event):
        raise ValueError("nope")

    bus.subscribe("memoryUpdated", slow)
    bus.subscribe("memoryUpdated", broken)
    bus.subscribe("memory*", lambda e: done.append("sync"))

    asyncio.run(bus.emit_async("memoryUpdated", {"key": "k"}))
    assert sorted(done) == ["slow", "sync"]


def test_sync_emit_schedules_coroutine_listeners_on_running_loop():
    bus = EventBus()
    done = []

    async def listener(event):
        done.append(event.payload)

    async def main():
        bus.emit("jobCompleted", "x")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    bus.subscribe("jobCompleted", listener)
    asyncio.run(main())
    assert done == ["x"]


def test_clear_removes_everything():
    bus = EventBus()
    bus.subscribe("a", lambda e: None)
    bus.subscribe("*", lambda e: None)
    bus.clear()
    assert bus.listener_count("a") == 0


def test_scheduled_listener_tasks_are_held_until_done():
    bus = EventBus()
    done = []
    counts = []

    async def listener(event):
        await asyncio.sleep(0.01)
        done.append(event.name)

    async def main():
        bus.emit("runCompleted", None)
        counts.append(bus.pending_tasks)
        await asyncio.sleep(0.05)
        counts.append(bus.pending_tasks)

    bus.subscribe("runCompleted", listener)
    asyncio.run(main())
    assert counts == [1, 0]
    assert done == ["runCompleted"]
