"""WebSocket endpoint for live run monitoring.

``/ws/runs/{playbook_id}`` bridges the automation runtime's status stream to
the execution overlay of a stored playbook. The client sends, one JSON text
frame at a time:

    {"nodeId": "nav-1", "status": "running"}
    {"nodeId": "nav-1", "status": "success", "message": "Loaded"}
    {"action": "stop"}

and receives the overlay snapshot after each frame. Disconnecting completes
the run, which resets the overlay.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from reavion.editor.session import PlaybookSession
from reavion.exceptions import PlaybookNotFoundError
from reavion.monitoring.event_bus import EventBus, LoggingSink
from reavion.monitoring.tracker import StatusEvent
from reavion.settings import get_settings
from reavion.store.playbook_store import PlaybookFileStore

logger = logging.getLogger(__name__)

ws_router = APIRouter(tags=["websocket"])

# ---------------------------------------------------------------------------
# Active run registry (playbook_id → EventBus)
# ---------------------------------------------------------------------------

_active_buses: dict[str, EventBus] = {}


def register_bus(playbook_id: str, bus: EventBus) -> None:
    """Register the event bus of a running playbook."""
    _active_buses[playbook_id] = bus
    logger.info("Registered event bus for playbook %s", playbook_id)


def unregister_bus(playbook_id: str) -> None:
    """Unregister an event bus when the run ends."""
    _active_buses.pop(playbook_id, None)
    logger.info("Unregistered event bus for playbook %s", playbook_id)


def get_bus(playbook_id: str) -> EventBus | None:
    """Get the event bus for a running playbook, or None."""
    return _active_buses.get(playbook_id)


def list_active_runs() -> list[str]:
    """Return IDs of all playbooks with a run in progress."""
    return list(_active_buses.keys())


# ---------------------------------------------------------------------------
# Run endpoint
# ---------------------------------------------------------------------------


@ws_router.websocket("/ws/runs/{playbook_id}")
async def ws_run(websocket: WebSocket, playbook_id: str) -> None:
    """Drive the execution overlay of one playbook from a status-event stream."""
    await websocket.accept()

    store = PlaybookFileStore(Path(get_settings().storage.playbook_dir))
    try:
        session = PlaybookSession.load(store, playbook_id)
    except PlaybookNotFoundError:
        await websocket.send_json({"error": "playbook_not_found", "playbook_id": playbook_id})
        await websocket.close(code=4004, reason="Playbook not found")
        return

    bus = EventBus(playbook_id=playbook_id)
    bus.add_sink(LoggingSink())
    session.bus = bus
    session.tracker.bus = bus
    tracker = session.tracker
    register_bus(playbook_id, bus)

    await tracker.start_run()
    await websocket.send_json({"type": "snapshot", "data": tracker.overlay()})

    try:
        while True:
            raw = await websocket.receive_text()
            if raw == "ping":
                await websocket.send_text("pong")
                continue

            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                await websocket.send_json({"error": "invalid_message", "detail": str(e)})
                continue

            if isinstance(data, dict) and data.get("action") == "stop":
                await tracker.stop()
                await websocket.send_json({"type": "stopped", "data": tracker.overlay()})
                continue

            try:
                event = StatusEvent.model_validate(data)
            except ValidationError as e:
                await websocket.send_json({"error": "invalid_event", "detail": str(e)})
                continue

            applied = await tracker.handle_event(event)
            await websocket.send_json({"type": "overlay", "applied": applied, "data": tracker.overlay()})

    except WebSocketDisconnect:
        pass
    finally:
        await tracker.complete()
        unregister_bus(playbook_id)
        logger.debug("Run client disconnected from %s", playbook_id)
