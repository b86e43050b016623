"""Playbook graph data models — nodes, edges and the playbook document.

Field names follow Python conventions; the camelCase wire names used by the
canvas and by exported JSON files (``executionStatus``, ``sourceHandle``, …)
are kept as aliases so documents round-trip unchanged:

* ``Node`` / ``NodeData`` — a step on the canvas with an opaque ``config`` map.
* ``Edge`` — a directed connection, optionally bound to named handles.
* ``PlaybookDocument`` — the persisted / exported playbook envelope.

Unknown keys are preserved (``extra="allow"``) because the canvas stores
presentation hints the engine does not interpret.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecutionStatus(str, Enum):
    """Status values reported by the automation runtime for a node."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class LayoutDirection(str, Enum):
    """Rank direction for auto-layout."""

    TOP_TO_BOTTOM = "TB"
    LEFT_TO_RIGHT = "LR"


class ExecutionMode(str, Enum):
    """How much autonomy the runtime has when executing a playbook."""

    OBSERVE = "observe"
    DRAFT = "draft"
    ASSIST = "assist"
    AUTO = "auto"


def new_id() -> str:
    """Return a fresh unique element id."""
    return str(uuid4())


def default_capabilities() -> dict[str, Any]:
    """Capabilities of a newly created playbook."""
    return {"browser": True, "mcp": [], "external_api": []}


def default_execution_defaults() -> dict[str, Any]:
    """Execution defaults of a newly created playbook."""
    return {"mode": ExecutionMode.OBSERVE.value, "require_approval": True, "speed": "normal"}


# ---------------------------------------------------------------------------
# Graph elements
# ---------------------------------------------------------------------------


class Position(BaseModel):
    """Top-left corner of a node on the canvas."""

    x: float = 0.0
    y: float = 0.0


class NodeData(BaseModel):
    """Mutable payload of a node.

    ``config`` is an opaque key-value map owned by the configuration surface.
    The execution fields are owned by ``ExecutionStatusTracker``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    execution_status: ExecutionStatus | None = Field(default=None, alias="executionStatus")
    execution_message: str | None = Field(default=None, alias="executionMessage")
    loop_count: int | None = Field(default=None, ge=0, alias="loopCount")
    layout_direction: LayoutDirection | None = Field(default=None, alias="layoutDirection")

    @field_validator("config", mode="before")
    @classmethod
    def _none_config_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    def clear_execution(self, *, loop_count: int | None = None) -> None:
        """Drop execution status and message, and set ``loop_count``."""
        self.execution_status = None
        self.execution_message = None
        self.loop_count = loop_count


class Node(BaseModel):
    """A single automation step on the canvas."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str
    position: Position = Field(default_factory=Position)
    data: NodeData = Field(default_factory=NodeData)
    width: float | None = None
    height: float | None = None
    selected: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the canvas' camelCase field names, without selection state."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"selected"})


class Edge(BaseModel):
    """A directed connection between two nodes."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(default_factory=new_id)
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")
    type: str | None = None
    animated: bool = False
    style: dict[str, Any] = Field(default_factory=dict)
    selected: bool | None = None

    @field_validator("style", mode="before")
    @classmethod
    def _none_style_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the canvas' camelCase field names, without selection state."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude={"selected"})


# ---------------------------------------------------------------------------
# Playbook document
# ---------------------------------------------------------------------------


class PlaybookGraph(BaseModel):
    """The node/edge collections of a playbook plus an optional viewport."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    viewport: dict[str, float] | None = None

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class PlaybookDocument(BaseModel):
    """A complete playbook as persisted and exported.

    ``capabilities`` and ``execution_defaults`` are carried as plain maps;
    the engine only reads ``execution_defaults["mode"]`` during save
    validation.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = "New Playbook"
    description: str = ""
    version: str = "1.0.0"
    graph: PlaybookGraph = Field(default_factory=PlaybookGraph)
    capabilities: dict[str, Any] = Field(default_factory=default_capabilities)
    execution_defaults: dict[str, Any] = Field(default_factory=default_execution_defaults)

    @field_validator("description", "version", mode="before")
    @classmethod
    def _none_is_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def execution_mode(self) -> str:
        """Return the configured execution mode (``observe`` when unset)."""
        return str(self.execution_defaults.get("mode") or ExecutionMode.OBSERVE.value)

    def to_export_dict(self) -> dict[str, Any]:
        """Return the exact export-file shape."""
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "graph": {
                "nodes": [n.to_dict() for n in self.graph.nodes],
                "edges": [e.to_dict() for e in self.graph.edges],
            },
            "capabilities": self.capabilities,
            "execution_defaults": self.execution_defaults,
        }
