"""Execution status overlay — turns runtime status events into node/edge state.

The automation runtime runs out of process and reports progress as a stream
of ``{nodeId, status, message?}`` events. ``ExecutionStatusTracker`` applies
them to the live graph in arrival order:

* a ``running`` event clears the status of every descendant (so a loop body
  that restarts is repainted from scratch), marks the node, bumps a loop
  node's iteration counter and emphasises the edge the run arrived through;
* ``success`` / ``error`` events only mark the node;
* every event adds a line to the execution log.

Stopping a run races with events already in flight. The tracker therefore
checks its ``run_active`` flag per event at consumption time and drops
anything that arrives after a stop.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterable, Mapping
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from reavion.graph.models import Edge, ExecutionStatus
from reavion.graph.registry import NodeType
from reavion.graph.store import GraphStore
from reavion.graph.walk import descendants
from reavion.monitoring.event_bus import EventBus, EventType

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 100

EMPHASIZED_EDGE_STYLE: dict[str, Any] = {"strokeDasharray": "5,5", "strokeWidth": 3, "stroke": "#3b82f6"}
RESTING_STROKE_WIDTH = 2

RUN_STARTED_MESSAGE = "System: Starting Playbook execution..."
RUN_STOPPED_MESSAGE = "System: Execution stopped by user."


class StatusEvent(BaseModel):
    """One status report from the automation runtime."""

    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(alias="nodeId")
    status: ExecutionStatus
    message: str | None = None


class ExecutionLogEntry(BaseModel):
    """A human-readable line in the execution log."""

    message: str
    status: str = "info"
    node_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@runtime_checkable
class RunController(Protocol):
    """Outbound handle to the runtime. ``stop()`` is idempotent and fire-and-forget."""

    def stop(self) -> Any: ...


def emphasize_edge(edge: Edge) -> None:
    """Mark ``edge`` as the path the run just travelled."""
    edge.animated = True
    edge.style = {**edge.style, **EMPHASIZED_EDGE_STYLE}


def deemphasize_edge(edge: Edge) -> None:
    """Return ``edge`` to its resting look."""
    edge.animated = False
    style = {k: v for k, v in edge.style.items() if k not in ("strokeDasharray", "stroke")}
    style["strokeWidth"] = RESTING_STROKE_WIDTH
    edge.style = style


def is_emphasized(edge: Edge) -> bool:
    return edge.animated or "strokeDasharray" in edge.style or "stroke" in edge.style


class ExecutionStatusTracker:
    """Owns the overlay state of one playbook's runs.

    Args:
        store: The live graph the overlay is painted on.
        bus: Optional event bus; run lifecycle and node status are published
            to it.
        log_limit: Maximum number of retained log lines (newest first).
        controller: Optional runtime handle used by ``stop``.
    """

    def __init__(
        self,
        store: GraphStore,
        bus: EventBus | None = None,
        log_limit: int = DEFAULT_LOG_LIMIT,
        controller: RunController | None = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.log_limit = log_limit
        self.controller = controller
        self.last_active_node_id: str | None = None
        self.run_active = False
        self.logs: list[ExecutionLogEntry] = []

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def start_run(self) -> None:
        """Begin a new run on a clean overlay. An active run is stopped first."""
        if self.run_active:
            await self.stop()
        self.reset()
        self.run_active = True
        self._log(RUN_STARTED_MESSAGE, "info")
        await self._emit(EventType.RUN_STARTED, {})
        logger.info("Playbook run started")

    async def stop(self) -> None:
        """Stop the active run: drop in-flight events, signal the runtime, reset.

        Safe to call repeatedly. A controller that fails to stop is logged;
        the overlay is reset regardless.
        """
        self.run_active = False
        if self.controller is not None:
            try:
                result = self.controller.stop()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning("Run controller failed to stop: %s", e)
        self.reset()
        self._log(RUN_STOPPED_MESSAGE, "info")
        await self._emit(EventType.RUN_STOPPED, {})
        logger.info("Playbook run stopped by user")

    async def complete(self) -> None:
        """End the run after the event stream is exhausted."""
        self.run_active = False
        self.reset()
        await self._emit(EventType.RUN_COMPLETED, {})
        logger.info("Playbook run completed")

    async def consume(self, stream: AsyncIterable[StatusEvent | Mapping[str, Any]]) -> int:
        """Apply every event of ``stream`` in order, then complete the run.

        Returns:
            The number of events that were applied (stale ones excluded).
        """
        applied = 0
        try:
            async for event in stream:
                if await self.handle_event(event):
                    applied += 1
        finally:
            await self.complete()
        return applied

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(self, event: StatusEvent | Mapping[str, Any]) -> bool:
        """Apply one status event.

        Returns:
            ``False`` if the event was discarded because no run is active.
        """
        if not isinstance(event, StatusEvent):
            event = StatusEvent.model_validate(event)

        if not self.run_active:
            logger.debug("Discarding stale status event for %s (%s)", event.node_id, event.status.value)
            await self._emit(EventType.STALE_EVENT, {"node_id": event.node_id, "status": event.status.value})
            return False

        self.apply(event)
        await self._emit(
            EventType.NODE_STATUS,
            {"node_id": event.node_id, "status": event.status.value, "message": event.message},
        )
        return True

    def apply(self, event: StatusEvent) -> None:
        """Paint ``event`` onto the graph without the active-run check."""
        running = event.status is ExecutionStatus.RUNNING

        if running:
            for node_id in descendants(event.node_id, self.store.edges):
                node = self.store.get_node(node_id)
                if node is not None:
                    node.data.execution_status = None
                    node.data.execution_message = None

        node = self.store.get_node(event.node_id)
        if node is not None:
            node.data.execution_status = event.status
            node.data.execution_message = event.message
            if running and node.type == NodeType.LOOP.value:
                node.data.loop_count = (node.data.loop_count or 0) + 1
        else:
            logger.debug("Status event for unknown node %s", event.node_id)

        if running:
            self._emphasize_path_to(event.node_id)
            self.last_active_node_id = event.node_id

        label = (node.data.label if node is not None else "") or event.node_id
        if event.message:
            text = event.message
        elif running:
            text = f"Starting {label}..."
        else:
            text = f"{label}: {event.status.value}"
        self._log(text, event.status.value, event.node_id)

    def _emphasize_path_to(self, node_id: str) -> None:
        previous = self.last_active_node_id
        for edge in self.store.edges:
            if edge.target == node_id and (previous is None or edge.source == previous):
                emphasize_edge(edge)
            else:
                deemphasize_edge(edge)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear the cursor, every node's execution state and every edge's emphasis.

        The execution log is kept.
        """
        self.last_active_node_id = None
        for node in self.store.nodes:
            node.data.clear_execution(loop_count=0)
        for edge in self.store.edges:
            deemphasize_edge(edge)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def overlay(self) -> dict[str, Any]:
        """Snapshot of the overlay for display or transport."""
        return {
            "run_active": self.run_active,
            "last_active_node_id": self.last_active_node_id,
            "nodes": {
                n.id: {
                    "status": n.data.execution_status.value if n.data.execution_status else None,
                    "message": n.data.execution_message,
                    "loop_count": n.data.loop_count or 0,
                }
                for n in self.store.nodes
            },
            "emphasized_edges": [e.id for e in self.store.edges if is_emphasized(e)],
            "logs": [entry.model_dump() for entry in self.logs],
        }

    def _log(self, message: str, status: str, node_id: str | None = None) -> None:
        entry = ExecutionLogEntry(message=message, status=status, node_id=node_id)
        self.logs = [entry, *self.logs][: self.log_limit]

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self.bus is not None:
            await self.bus.emit(event_type, data)
