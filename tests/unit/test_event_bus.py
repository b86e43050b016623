"""Unit tests for the event bus module."""

from __future__ import annotations

import json
from io import StringIO

import pytest

from reavion.monitoring.event_bus import (
    Event,
    EventBus,
    EventSink,
    EventType,
    InMemorySink,
    JsonlSink,
    LoggingSink,
)


# ===================================================================
# Event model tests
# ===================================================================


class TestEvent:
    """Tests for the Event Pydantic model."""

    def test_create_event(self) -> None:
        """Event is created with all fields populated."""
        event = Event(
            event_type=EventType.NODE_STATUS,
            playbook_id="abc123",
            data={"node_id": "nav-1", "status": "running"},
        )
        assert event.event_type == EventType.NODE_STATUS
        assert event.playbook_id == "abc123"
        assert event.data["node_id"] == "nav-1"
        assert event.timestamp  # auto-set

    def test_event_to_jsonl(self) -> None:
        """to_jsonl produces valid JSON without newlines."""
        event = Event(event_type=EventType.LOG, data={"msg": "test"})
        line = event.to_jsonl()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["event_type"] == "log"
        assert parsed["data"]["msg"] == "test"

    def test_event_default_timestamp(self) -> None:
        """Events get an ISO timestamp by default."""
        event = Event(event_type=EventType.LOG)
        assert "T" in event.timestamp  # ISO format


class TestEventType:
    """Tests for the EventType enum."""

    def test_expected_event_types_exist(self) -> None:
        """Core event types exist."""
        names = {et.value for et in EventType}
        expected = {
            "run_started",
            "run_stopped",
            "run_completed",
            "node_status",
            "stale_event",
            "playbook_saved",
            "graph_pasted",
            "graph_laid_out",
            "log",
            "error",
        }
        assert expected.issubset(names)


# ===================================================================
# Built-in sink tests
# ===================================================================


class TestSinks:
    """Tests for the built-in sinks."""

    def test_builtin_sinks_satisfy_protocol(self) -> None:
        for sink in (InMemorySink(), JsonlSink(StringIO()), LoggingSink()):
            assert isinstance(sink, EventSink)

    @pytest.mark.anyio
    async def test_in_memory_collects_and_filters(self) -> None:
        """InMemorySink stores events in order and filters by type."""
        sink = InMemorySink()
        await sink.handle_event(Event(event_type=EventType.LOG, data={"x": 1}))
        await sink.handle_event(Event(event_type=EventType.RUN_STARTED))
        await sink.handle_event(Event(event_type=EventType.LOG, data={"x": 2}))
        assert sink.count == 3
        assert [e.data["x"] for e in sink.of_type(EventType.LOG)] == [1, 2]
        sink.clear()
        assert sink.count == 0

    @pytest.mark.anyio
    async def test_jsonl_writes_one_line_per_event(self) -> None:
        buf = StringIO()
        sink = JsonlSink(buf)
        await sink.handle_event(Event(event_type=EventType.RUN_STARTED))
        await sink.handle_event(Event(event_type=EventType.NODE_STATUS, data={"node_id": "a"}))
        lines = buf.getvalue().strip().split("\n")
        assert len(lines) == 2
        assert json.loads(lines[1])["data"]["node_id"] == "a"

    @pytest.mark.anyio
    async def test_logging_sink(self, caplog: pytest.LogCaptureFixture) -> None:
        """LoggingSink logs at DEBUG on the events logger."""
        caplog.set_level("DEBUG", logger="reavion.events")
        await LoggingSink().handle_event(Event(event_type=EventType.LOG, playbook_id="pb", data={"msg": "hi"}))
        assert "[pb] log" in caplog.text


# ===================================================================
# EventBus tests
# ===================================================================


class TestEventBus:
    """Tests for the EventBus core functionality."""

    @pytest.mark.anyio
    async def test_emit_to_single_sink(self) -> None:
        """Events flow to a registered sink."""
        bus = EventBus(playbook_id="test-1")
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit(EventType.RUN_STARTED)
        assert sink.count == 1
        assert sink.events[0].event_type == EventType.RUN_STARTED
        assert sink.events[0].playbook_id == "test-1"

    @pytest.mark.anyio
    async def test_emit_to_multiple_sinks(self) -> None:
        """Events are broadcast to all sinks."""
        bus = EventBus()
        s1 = InMemorySink()
        s2 = InMemorySink()
        bus.add_sink(s1)
        bus.add_sink(s2)
        await bus.emit(EventType.LOG, {"msg": "hello"})
        assert s1.count == 1
        assert s2.count == 1

    @pytest.mark.anyio
    async def test_remove_sink(self) -> None:
        """Removed sinks no longer receive events."""
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit(EventType.LOG)
        bus.remove_sink(sink)
        await bus.emit(EventType.LOG)
        assert sink.count == 1
        assert bus.sink_count == 0

    @pytest.mark.anyio
    async def test_emit_string_event_type(self) -> None:
        """String event types are normalized to EventType enum."""
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit("graph_pasted", {"nodes": 2})
        await bus.emit("some_unknown_type", {"info": "test"})
        assert [e.event_type for e in sink.events] == [EventType.GRAPH_PASTED, EventType.LOG]

    @pytest.mark.anyio
    async def test_sink_error_does_not_propagate(self) -> None:
        """A failing sink doesn't stop other sinks from receiving events."""
        bus = EventBus()

        class BrokenSink:
            async def handle_event(self, event: Event) -> None:
                raise RuntimeError("boom")

        good_sink = InMemorySink()
        bus.add_sink(BrokenSink())  # type: ignore[arg-type]
        bus.add_sink(good_sink)
        await bus.emit(EventType.LOG, {"msg": "test"})
        assert good_sink.count == 1


# ===================================================================
# Snapshot tests
# ===================================================================


class TestEventBusSnapshot:
    """Tests for the run snapshot served to late-joining clients."""

    @pytest.mark.anyio
    async def test_snapshot_tracks_run(self) -> None:
        bus = EventBus()
        await bus.emit(EventType.RUN_STARTED)
        await bus.emit(EventType.NODE_STATUS, {"node_id": "loop-1", "status": "running"})
        await bus.emit(EventType.NODE_STATUS, {"node_id": "loop-1", "status": "success"})
        snap = bus.get_snapshot()
        assert snap["run_active"] is True
        assert snap["active_node_id"] == "loop-1"
        assert snap["events_seen"] == 2

    @pytest.mark.anyio
    async def test_snapshot_clears_on_stop(self) -> None:
        bus = EventBus()
        await bus.emit(EventType.RUN_STARTED)
        await bus.emit(EventType.NODE_STATUS, {"node_id": "a", "status": "running"})
        await bus.emit(EventType.RUN_STOPPED)
        snap = bus.get_snapshot()
        assert snap["run_active"] is False
        assert snap["active_node_id"] is None

    def test_snapshot_has_uptime(self) -> None:
        """Snapshot includes uptime_sec."""
        snap = EventBus().get_snapshot()
        assert snap["uptime_sec"] >= 0.0
