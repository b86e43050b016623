"""Reavion test configuration — shared fixtures for unit and integration tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from reavion.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def playbook_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the configured playbook store at a temporary directory."""
    directory = tmp_path / "playbooks"
    monkeypatch.setenv("REAVION_STORAGE__PLAYBOOK_DIR", str(directory))
    return directory


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def playbook_store(playbook_dir: Path):
    """Create a disposable ``PlaybookFileStore`` in a temporary directory."""
    from reavion.store.playbook_store import PlaybookFileStore

    return PlaybookFileStore(playbook_dir)


# ---------------------------------------------------------------------------
# Playbook documents
# ---------------------------------------------------------------------------


def _node(node_id: str, node_type: str, x: float = 0, y: float = 0, **data: Any) -> dict[str, Any]:
    return {"id": node_id, "type": node_type, "position": {"x": x, "y": y}, "data": {"label": "", "config": {}, **data}}


def _edge(edge_id: str, source: str, target: str, handle: str | None = None) -> dict[str, Any]:
    edge: dict[str, Any] = {"id": edge_id, "source": source, "target": target}
    if handle:
        edge["sourceHandle"] = handle
    return edge


@pytest.fixture()
def loop_playbook() -> dict[str, Any]:
    """Export document: Start → Navigate → Loop → Engage (back to Loop) → End."""
    return {
        "name": "Engage Loop",
        "description": "Navigate, then engage with every item",
        "version": "1.0.0",
        "graph": {
            "nodes": [
                _node("start-1", "start", 100, 100, label="Start"),
                _node("nav-1", "navigate", 100, 300, label="Navigate", config={"url": "https://x.com/home"}),
                _node("loop-1", "loop", 100, 500, label="Loop", config={"max_iterations": 3}),
                _node("engage-1", "x_engage", 400, 700, label="Engage", config={"reply": "{{loop-1.item}}"}),
                _node("end-1", "end", 100, 900, label="End"),
            ],
            "edges": [
                _edge("e1", "start-1", "nav-1"),
                _edge("e2", "nav-1", "loop-1"),
                _edge("e3", "loop-1", "engage-1", "item"),
                _edge("e4", "engage-1", "loop-1"),
                _edge("e5", "loop-1", "end-1", "done"),
            ],
        },
        "capabilities": {"browser": True, "mcp": [], "external_api": []},
        "execution_defaults": {"mode": "observe", "require_approval": True, "speed": "normal"},
    }


@pytest.fixture()
def linear_playbook() -> dict[str, Any]:
    """Export document: Start → Navigate → End."""
    return {
        "name": "Visit Home",
        "description": "Open the home page",
        "version": "2.1.0",
        "graph": {
            "nodes": [
                _node("start-1", "start", label="Start"),
                _node("nav-1", "navigate", label="Navigate"),
                _node("end-1", "end", label="End"),
            ],
            "edges": [_edge("e1", "start-1", "nav-1"), _edge("e2", "nav-1", "end-1")],
        },
        "capabilities": {"browser": True},
        "execution_defaults": {"mode": "observe"},
    }


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that exercise the API or real file I/O")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
