"""Run monitoring: the execution status overlay and the event bus that publishes it.

Usage::

    from reavion.monitoring import EventBus, ExecutionStatusTracker, LoggingSink

    bus = EventBus(playbook_id="abc123")
    bus.add_sink(LoggingSink())
    tracker = ExecutionStatusTracker(store, bus=bus)
    await tracker.start_run()
    await tracker.consume(runtime.status_events())
"""

from reavion.monitoring.event_bus import Event, EventBus, EventSink, EventType, InMemorySink, JsonlSink, LoggingSink
from reavion.monitoring.tracker import ExecutionLogEntry, ExecutionStatusTracker, RunController, StatusEvent

__all__ = [
    "Event",
    "EventBus",
    "EventSink",
    "EventType",
    "ExecutionLogEntry",
    "ExecutionStatusTracker",
    "InMemorySink",
    "JsonlSink",
    "LoggingSink",
    "RunController",
    "StatusEvent",
]
