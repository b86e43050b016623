"""API integration tests: playbook CRUD, layout, variables and the run monitor.

Uses the FastAPI ``TestClient`` against a playbook store in a temporary
directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from reavion.api.app import create_app

pytestmark = pytest.mark.integration


@pytest.fixture()
def client(playbook_dir: Path):
    """Fresh TestClient over an empty playbook directory."""
    app = create_app()
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def stored_id(client: TestClient, loop_playbook: dict[str, Any]) -> str:
    resp = client.post("/playbooks", json=loop_playbook)
    assert resp.status_code == 201
    return resp.json()["id"]


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------


class TestServiceEndpoints:
    """Health, palette and active runs."""

    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_node_types(self, client: TestClient) -> None:
        data = client.get("/node-types").json()
        control = {d["type"]: d for d in data["Control"]}
        assert control["loop"]["outputs"] == 2
        assert control["loop"]["outputs_schema"][0]["key"] == "item"
        assert control["start"]["inputs"] == 0

    def test_no_active_runs(self, client: TestClient) -> None:
        assert client.get("/runs").json() == {"active": []}


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestPlaybookCrud:
    """Create, read, update, delete."""

    def test_create_and_get(self, client: TestClient, stored_id: str) -> None:
        resp = client.get(f"/playbooks/{stored_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == stored_id
        assert data["name"] == "Engage Loop"
        assert len(data["graph"]["nodes"]) == 5

    def test_list(self, client: TestClient, stored_id: str) -> None:
        rows = client.get("/playbooks").json()
        assert rows == [
            {
                "id": stored_id,
                "name": "Engage Loop",
                "description": "Navigate, then engage with every item",
                "version": "1.0.0",
                "nodes_count": 5,
                "edges_count": 5,
            }
        ]

    def test_create_without_start_rejected(self, client: TestClient, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["graph"]["nodes"] = loop_playbook["graph"]["nodes"][1:]
        resp = client.post("/playbooks", json=loop_playbook)
        assert resp.status_code == 422
        assert "Start node" in resp.json()["detail"]
        assert client.get("/playbooks").json() == []

    def test_auto_mode_without_end_accepted(self, client: TestClient, linear_playbook: dict[str, Any]) -> None:
        linear_playbook["graph"]["nodes"] = linear_playbook["graph"]["nodes"][:2]
        linear_playbook["execution_defaults"] = {"mode": "auto"}
        assert client.post("/playbooks", json=linear_playbook).status_code == 201

    def test_update(self, client: TestClient, stored_id: str, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["name"] = "Renamed"
        resp = client.put(f"/playbooks/{stored_id}", json=loop_playbook)
        assert resp.status_code == 200
        assert client.get(f"/playbooks/{stored_id}").json()["name"] == "Renamed"

    def test_update_missing(self, client: TestClient, loop_playbook: dict[str, Any]) -> None:
        assert client.put("/playbooks/ghost", json=loop_playbook).status_code == 404

    def test_delete(self, client: TestClient, stored_id: str) -> None:
        assert client.delete(f"/playbooks/{stored_id}").status_code == 204
        assert client.get(f"/playbooks/{stored_id}").status_code == 404
        assert client.delete(f"/playbooks/{stored_id}").status_code == 404

    def test_duplicate_start_is_conflict(self, client: TestClient, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["graph"]["nodes"][1]["type"] = "start"
        resp = client.post("/playbooks", json=loop_playbook)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Only one Start node allowed."
        assert client.get("/playbooks").json() == []

    def test_stale_execution_state_not_stored(self, client: TestClient, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["graph"]["nodes"][2]["data"]["executionStatus"] = "running"
        playbook_id = client.post("/playbooks", json=loop_playbook).json()["id"]
        stored = client.get(f"/playbooks/{playbook_id}").json()
        assert "executionStatus" not in stored["graph"]["nodes"][2]["data"]


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


class TestImportExport:
    """Export files in and out."""

    def test_export_download(self, client: TestClient, stored_id: str) -> None:
        resp = client.get(f"/playbooks/{stored_id}/export")
        assert resp.status_code == 200
        assert 'filename="engage_loop_v1.0.0.json"' in resp.headers["content-disposition"]
        assert "id" not in resp.json()

    def test_import(self, client: TestClient, loop_playbook: dict[str, Any]) -> None:
        resp = client.post("/playbooks/import", json=loop_playbook)
        assert resp.status_code == 201
        assert resp.json()["name"] == "Engage Loop (Imported)"
        assert [n["id"] for n in resp.json()["graph"]["nodes"]][0] == "start-1"

    def test_import_with_second_start_rejected(self, client: TestClient, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["graph"]["nodes"][1]["type"] = "start"
        resp = client.post("/playbooks/import", json=loop_playbook)
        assert resp.status_code == 422
        assert "Only one Start node allowed." in resp.json()["detail"]
        assert client.get("/playbooks").json() == []

    def test_import_missing_keys(self, client: TestClient) -> None:
        resp = client.post("/playbooks/import", json={"name": "x"})
        assert resp.status_code == 422
        assert "missing graph, capabilities" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# Layout / variables
# ---------------------------------------------------------------------------


class TestLayoutAndVariables:
    """Derived views of a stored playbook."""

    def test_layout_persists(self, client: TestClient, stored_id: str) -> None:
        resp = client.post(f"/playbooks/{stored_id}/layout", params={"direction": "LR"})
        assert resp.status_code == 200
        stored = client.get(f"/playbooks/{stored_id}").json()
        start = stored["graph"]["nodes"][0]
        assert start["position"]["x"] == 0
        assert start["data"]["layoutDirection"] == "LR"

    def test_layout_bad_direction(self, client: TestClient, stored_id: str) -> None:
        resp = client.post(f"/playbooks/{stored_id}/layout", params={"direction": "XY"})
        assert resp.status_code == 422

    def test_variables(self, client: TestClient, stored_id: str) -> None:
        resp = client.get(f"/playbooks/{stored_id}/variables/engage-1")
        assert resp.status_code == 200
        assert [g["name"] for g in resp.json()] == ["Loop", "Agent"]

    def test_variables_unknown_node(self, client: TestClient, stored_id: str) -> None:
        assert client.get(f"/playbooks/{stored_id}/variables/ghost").status_code == 404


# ---------------------------------------------------------------------------
# Run monitor
# ---------------------------------------------------------------------------


class TestRunWebSocket:
    """Status events over the run WebSocket."""

    def test_run_and_stop(self, client: TestClient, stored_id: str) -> None:
        with client.websocket_connect(f"/ws/runs/{stored_id}") as ws:
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["data"]["run_active"] is True
            assert client.get("/runs").json() == {"active": [stored_id]}

            ws.send_text("ping")
            assert ws.receive_text() == "pong"

            ws.send_json({"nodeId": "loop-1", "status": "running"})
            msg = ws.receive_json()
            assert msg["type"] == "overlay"
            assert msg["applied"] is True
            assert msg["data"]["nodes"]["loop-1"]["loop_count"] == 1

            ws.send_json({"action": "stop"})
            stopped = ws.receive_json()
            assert stopped["type"] == "stopped"
            assert stopped["data"]["run_active"] is False

            ws.send_json({"nodeId": "engage-1", "status": "running"})
            stale = ws.receive_json()
            assert stale["applied"] is False
            assert stale["data"]["nodes"]["engage-1"]["status"] is None


    def test_bad_messages(self, client: TestClient, stored_id: str) -> None:
        with client.websocket_connect(f"/ws/runs/{stored_id}") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            assert ws.receive_json()["error"] == "invalid_message"
            ws.send_json({"nodeId": "loop-1", "status": "paused"})
            assert ws.receive_json()["error"] == "invalid_event"

    def test_unknown_playbook(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/runs/ghost") as ws:
            assert ws.receive_json()["error"] == "playbook_not_found"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
            assert exc_info.value.code == 4004
