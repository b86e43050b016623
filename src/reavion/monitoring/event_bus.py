"""Event bus — decouples the execution tracker from its consumers (CLI, WebSocket, logs).

* Type-safe event types via ``EventType`` enum.
* Multiple sink pattern: a single bus emits to all registered
  ``EventSink`` implementations (JSONL stream, WebSocket, logger).
* Snapshot caching so late-joining WebSocket clients see the current run
  state immediately.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """All event types emitted while editing and running a playbook."""

    # Run lifecycle
    RUN_STARTED = "run_started"
    RUN_STOPPED = "run_stopped"
    RUN_COMPLETED = "run_completed"

    # Execution overlay
    NODE_STATUS = "node_status"
    STALE_EVENT = "stale_event"

    # Editing
    PLAYBOOK_SAVED = "playbook_saved"
    GRAPH_PASTED = "graph_pasted"
    GRAPH_LAID_OUT = "graph_laid_out"

    # Progress / info
    LOG = "log"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Event payload model
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """Structured event emitted by the event bus."""

    event_type: EventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    playbook_id: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    def to_jsonl(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Sink protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class EventSink(Protocol):
    """Protocol for event consumers."""

    async def handle_event(self, event: Event) -> None:
        """Process a single event."""
        ...


# ---------------------------------------------------------------------------
# Built-in sinks
# ---------------------------------------------------------------------------


class LoggingSink:
    """Emit events to the Python logger at DEBUG level."""

    def __init__(self, logger_name: str = "reavion.events") -> None:
        self._logger = logging.getLogger(logger_name)

    async def handle_event(self, event: Event) -> None:
        """Log the event."""
        self._logger.debug(
            "[%s] %s: %s",
            event.playbook_id or "?",
            event.event_type.value,
            json.dumps(event.data, default=str)[:200],
        )


class InMemorySink:
    """Collect events in a list."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle_event(self, event: Event) -> None:
        """Append the event to the in-memory list."""
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        """Return collected events of one type, in arrival order."""
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    @property
    def count(self) -> int:
        return len(self.events)


class JsonlSink:
    """Write events as JSONL lines to a file-like object (``sys.stdout``, an open file)."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    async def handle_event(self, event: Event) -> None:
        """Write one JSON line to the stream."""
        self._stream.write(event.to_jsonl() + "\n")
        if hasattr(self._stream, "flush"):
            self._stream.flush()


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class EventBus:
    """Central event dispatcher.

    A failing sink is logged and skipped; it never interrupts delivery to
    the other sinks or the emitter.

    Args:
        playbook_id: Optional default playbook ID attached to all events.
    """

    def __init__(self, playbook_id: str = "") -> None:
        self._playbook_id = playbook_id
        self._sinks: list[EventSink] = []

        # Snapshot for late-joining clients
        self._run_active = False
        self._active_node_id: str | None = None
        self._events_seen = 0
        self._started_at: float = time.monotonic()

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def add_sink(self, sink: EventSink) -> None:
        """Register an event sink."""
        self._sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        """Remove a previously registered sink."""
        self._sinks = [s for s in self._sinks if s is not sink]

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    async def emit(self, event_type: EventType | str, data: dict[str, Any] | None = None) -> None:
        """Emit an event to all registered sinks.

        Args:
            event_type: The event type (``EventType`` enum or raw string).
                Unknown strings are delivered as ``LOG``.
            data: Optional payload data.
        """
        if isinstance(event_type, str) and not isinstance(event_type, EventType):
            try:
                event_type = EventType(event_type)
            except ValueError:
                event_type = EventType.LOG

        payload = data or {}
        self._update_snapshot(event_type, payload)

        event = Event(event_type=event_type, playbook_id=self._playbook_id, data=payload)

        for sink in self._sinks:
            try:
                await sink.handle_event(event)
            except Exception as exc:
                logger.warning("EventBus sink error (%s): %s", type(sink).__name__, exc)

    def _update_snapshot(self, event_type: EventType, data: dict[str, Any]) -> None:
        if event_type == EventType.RUN_STARTED:
            self._run_active = True
            self._active_node_id = None
            self._events_seen = 0
            self._started_at = time.monotonic()
        elif event_type in (EventType.RUN_STOPPED, EventType.RUN_COMPLETED):
            self._run_active = False
            self._active_node_id = None
        elif event_type == EventType.NODE_STATUS:
            self._events_seen += 1
            if data.get("status") == "running":
                self._active_node_id = data.get("node_id")

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def get_snapshot(self) -> dict[str, Any]:
        """Return the latest run state for new clients."""
        return {
            "run_active": self._run_active,
            "active_node_id": self._active_node_id,
            "events_seen": self._events_seen,
            "uptime_sec": round(time.monotonic() - self._started_at, 1),
        }
