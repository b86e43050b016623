"""Unit tests for playbook sessions and save validation."""

from __future__ import annotations

import json
from typing import Any

import pytest

from reavion.editor.session import PlaybookSession, skeleton_document
from reavion.editor.validation import MISSING_END, MISSING_START, save_errors, validate_for_save
from reavion.exceptions import PlaybookNotFoundError, SaveValidationError
from reavion.graph.models import ExecutionStatus, LayoutDirection, PlaybookDocument
from reavion.graph.transplant import PasteOutcome
from reavion.monitoring.event_bus import EventBus, EventType, InMemorySink


def _session(data: dict[str, Any], **kwargs: Any) -> PlaybookSession:
    return PlaybookSession(PlaybookDocument.model_validate(data), **kwargs)


class TestSkeleton:
    """New playbooks."""

    def test_skeleton_nodes(self) -> None:
        doc = skeleton_document("Fresh")
        assert doc.name == "Fresh"
        assert [(n.id, n.type) for n in doc.graph.nodes] == [("start-1", "start"), ("end-1", "end")]
        assert (doc.graph.nodes[1].position.x, doc.graph.nodes[1].position.y) == (500, 100)
        assert doc.graph.edges == []
        assert doc.capabilities == {"browser": True, "mcp": [], "external_api": []}
        assert doc.execution_defaults["mode"] == "observe"

    def test_new_session_is_skeleton(self) -> None:
        session = PlaybookSession.new("Fresh")
        assert session.graph.is_minimal_skeleton()
        assert session.playbook_id is None


class TestLoad:
    """Opening stored playbooks."""

    def test_stale_execution_state_is_cleared(self, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["graph"]["nodes"][2]["data"].update(
            {"executionStatus": "running", "executionMessage": "stuck", "loopCount": 7}
        )
        loop_playbook["graph"]["edges"][1].update({"animated": True, "style": {"strokeDasharray": "5,5"}})

        session = _session(loop_playbook)

        loop = session.graph.get_node("loop-1")
        assert loop.data.execution_status is None
        assert loop.data.execution_message is None
        assert loop.data.loop_count == 0
        edge = session.graph.get_edge("e2")
        assert edge.animated is False
        assert "strokeDasharray" not in edge.style

    def test_document_is_not_mutated(self, loop_playbook: dict[str, Any]) -> None:
        loop_playbook["graph"]["nodes"][2]["data"]["executionStatus"] = "success"
        doc = PlaybookDocument.model_validate(loop_playbook)
        PlaybookSession(doc)
        assert doc.graph.nodes[2].data.execution_status == ExecutionStatus.SUCCESS

    def test_load_missing(self, playbook_store) -> None:
        with pytest.raises(PlaybookNotFoundError):
            PlaybookSession.load(playbook_store, "nope")


class TestSaveValidation:
    """Structural checks before persisting."""

    def test_missing_start(self) -> None:
        doc = skeleton_document()
        doc.graph.nodes = doc.graph.nodes[1:]
        with pytest.raises(SaveValidationError, match="must have a Start node"):
            validate_for_save(doc)

    def test_missing_end(self) -> None:
        doc = skeleton_document()
        doc.graph.nodes = doc.graph.nodes[:1]
        assert save_errors(doc.graph.nodes, "observe") == [MISSING_END]

    def test_missing_end_allowed_in_auto_mode(self) -> None:
        doc = skeleton_document()
        doc.graph.nodes = doc.graph.nodes[:1]
        doc.execution_defaults["mode"] = "auto"
        validate_for_save(doc)

    def test_both_missing(self) -> None:
        assert save_errors([], "assist") == [MISSING_START, MISSING_END]

    @pytest.mark.anyio
    async def test_save_writes_and_emits(self, playbook_store, loop_playbook: dict[str, Any]) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        session = _session(loop_playbook, bus=bus)

        playbook_id = await session.save(playbook_store)

        assert playbook_store.exists(playbook_id)
        assert session.playbook_id == playbook_id
        assert sink.of_type(EventType.PLAYBOOK_SAVED)[0].data["playbook_id"] == playbook_id

        # A second save keeps the id.
        assert await session.save(playbook_store) == playbook_id

    @pytest.mark.anyio
    async def test_invalid_save_writes_nothing(self, playbook_store) -> None:
        session = PlaybookSession.new()
        session.graph.delete_node("start-1")
        with pytest.raises(SaveValidationError):
            await session.save(playbook_store)
        assert playbook_store.list() == []


class TestEditing:
    """Variables, layout and paste through the session."""

    def test_variables(self, loop_playbook: dict[str, Any]) -> None:
        groups = _session(loop_playbook).variables("engage-1")
        assert [g.name for g in groups] == ["Loop", "Agent"]

    @pytest.mark.anyio
    async def test_layout_updates_graph_and_direction(self, loop_playbook: dict[str, Any]) -> None:
        session = _session(loop_playbook)
        await session.layout("LR")
        assert session.layout_direction == LayoutDirection.LEFT_TO_RIGHT
        start = session.graph.get_node("start-1")
        assert (start.position.x, start.position.y) != (100, 100)
        assert session.graph.get_edge("e1").source_handle == "right-source"
        assert session.graph.get_edge("e3").source_handle == "item"

    @pytest.mark.anyio
    async def test_layout_uses_configured_direction(self, monkeypatch, loop_playbook: dict[str, Any]) -> None:
        monkeypatch.setenv("REAVION_LAYOUT__DIRECTION", "LR")
        session = _session(loop_playbook)
        await session.layout()
        assert session.graph.get_node("nav-1").data.layout_direction == LayoutDirection.LEFT_TO_RIGHT

    @pytest.mark.anyio
    async def test_full_paste_adopts_metadata(self, loop_playbook: dict[str, Any]) -> None:
        session = PlaybookSession.new()
        result = await session.paste(json.dumps(loop_playbook))
        assert result.outcome == PasteOutcome.REPLACED
        assert session.name == "Engage Loop"
        assert session.description == "Navigate, then engage with every item"
        assert len(session.graph.nodes) == 5

    @pytest.mark.anyio
    async def test_paste_with_malformed_capabilities_changes_nothing(self, loop_playbook: dict[str, Any]) -> None:
        session = PlaybookSession.new("Fresh")
        loop_playbook["capabilities"] = True

        result = await session.paste(json.dumps(loop_playbook))

        assert result.outcome == PasteOutcome.IGNORED
        assert session.name == "Fresh"
        assert session.capabilities == {"browser": True, "mcp": [], "external_api": []}
        assert [n.id for n in session.graph.nodes] == ["start-1", "end-1"]

    @pytest.mark.anyio
    async def test_paste_uses_configured_offset(self, monkeypatch, linear_playbook: dict[str, Any]) -> None:
        monkeypatch.setenv("REAVION_EDITOR__PASTE_OFFSET", "10")
        session = _session(linear_playbook)
        node = {"id": "w", "type": "wait", "position": {"x": 5, "y": 5}, "data": {"config": {}}}
        await session.paste(node)
        assert session.graph.nodes[-1].position.x == 15

    @pytest.mark.anyio
    async def test_copy_paste(self, linear_playbook: dict[str, Any]) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        session = _session(linear_playbook, bus=bus)
        session.graph.get_node("nav-1").selected = True

        result = await session.paste(session.copy())

        assert result.outcome == PasteOutcome.MERGED
        assert len(session.graph.nodes) == 4
        assert sink.of_type(EventType.GRAPH_PASTED)[0].data["outcome"] == "merged"

    def test_export(self, linear_playbook: dict[str, Any]) -> None:
        session = _session(linear_playbook)
        data = session.export()
        assert data["name"] == "Visit Home"
        assert [n["id"] for n in data["graph"]["nodes"]] == ["start-1", "nav-1", "end-1"]
        assert session.export_filename() == "visit_home_v2.1.0.json"
