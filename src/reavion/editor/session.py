"""One open playbook: its metadata, its live graph and its run overlay.

``PlaybookSession`` ties the engine components together the way the editor
uses them: load from the document store (clearing stale execution state),
edit through the ``GraphStore``, resolve variables, auto-layout, copy/paste,
validate and save.
"""

from __future__ import annotations

import logging
from typing import Any

from reavion.editor.validation import validate_for_save
from reavion.graph.layout import LayoutEngine, LayoutResult
from reavion.graph.models import (
    Edge,
    LayoutDirection,
    Node,
    NodeData,
    PlaybookDocument,
    PlaybookGraph,
    Position,
)
from reavion.graph.registry import NodeType
from reavion.graph.scope import GlobalCatalog, SampleLookup, VariableGroup, VariableScopeResolver
from reavion.graph.store import GraphStore
from reavion.graph.transplant import (
    ConfirmCallback,
    PasteMode,
    PasteResult,
    copy_selection,
    export_document,
    export_filename,
    paste,
)
from reavion.monitoring.event_bus import EventBus, EventType
from reavion.monitoring.tracker import ExecutionStatusTracker, RunController, deemphasize_edge
from reavion.settings import Settings, get_settings
from reavion.store.playbook_store import PlaybookFileStore

logger = logging.getLogger(__name__)


def skeleton_document(name: str = "New Playbook") -> PlaybookDocument:
    """A fresh playbook holding only ``start-1`` and ``end-1``."""
    nodes = [
        Node(
            id="start-1",
            type=NodeType.START.value,
            position=Position(x=100, y=100),
            data=NodeData(label="Start", config={}),
        ),
        Node(
            id="end-1",
            type=NodeType.END.value,
            position=Position(x=500, y=100),
            data=NodeData(label="End", config={}),
        ),
    ]
    return PlaybookDocument(name=name, graph=PlaybookGraph(nodes=nodes, edges=[]))


def sanitize_graph(nodes: list[Node], edges: list[Edge]) -> None:
    """Drop execution state left over from a previous session, in place."""
    for node in nodes:
        node.data.clear_execution(loop_count=0)
    for edge in edges:
        deemphasize_edge(edge)


class PlaybookSession:
    """Editing session for one playbook.

    Args:
        document: The playbook to open. Its graph is loaded into a
            ``GraphStore`` after execution state is cleared.
        playbook_id: Id in the document store, ``None`` until first saved.
        settings: Settings override (defaults to ``get_settings()``).
        bus: Event bus for run and editing events.
        catalog: Global catalogues offered by the variable resolver.
        sample_lookup: Live example source for list-sourcing nodes.
        controller: Runtime handle used when a run is stopped.
    """

    def __init__(
        self,
        document: PlaybookDocument | None = None,
        *,
        playbook_id: str | None = None,
        settings: Settings | None = None,
        bus: EventBus | None = None,
        catalog: GlobalCatalog | None = None,
        sample_lookup: SampleLookup | None = None,
        controller: RunController | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        document = document or skeleton_document()
        self.playbook_id = playbook_id
        self.name = document.name
        self.description = document.description
        self.version = document.version
        self.capabilities: dict[str, Any] = dict(document.capabilities)
        self.execution_defaults: dict[str, Any] = dict(document.execution_defaults)
        self.viewport = document.graph.viewport
        self.layout_direction = LayoutDirection(self.settings.layout.direction)
        self.bus = bus

        nodes = [n.model_copy(deep=True) for n in document.graph.nodes]
        edges = [e.model_copy(deep=True) for e in document.graph.edges]
        sanitize_graph(nodes, edges)
        self.graph = GraphStore(nodes, edges)

        self.resolver = VariableScopeResolver(catalog, sample_lookup)
        self.layout_engine = LayoutEngine(
            node_sep=self.settings.layout.node_sep,
            rank_sep=self.settings.layout.rank_sep,
            default_width=self.settings.editor.default_node_width,
            default_height=self.settings.editor.default_node_height,
            crossing_passes=self.settings.layout.crossing_passes,
        )
        self.tracker = ExecutionStatusTracker(
            self.graph,
            bus=bus,
            log_limit=self.settings.editor.execution_log_limit,
            controller=controller,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(cls, name: str = "New Playbook", **kwargs: Any) -> PlaybookSession:
        """Open a fresh skeleton playbook."""
        return cls(skeleton_document(name), **kwargs)

    @classmethod
    def load(cls, store: PlaybookFileStore, playbook_id: str, **kwargs: Any) -> PlaybookSession:
        """Open a stored playbook.

        Raises:
            PlaybookNotFoundError: If the store has no such playbook.
        """
        document = store.load(playbook_id)
        logger.info("Loaded playbook %s (%s)", playbook_id, document.name)
        return cls(document, playbook_id=playbook_id, **kwargs)

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def to_document(self) -> PlaybookDocument:
        """Snapshot the session as a playbook document."""
        nodes, edges = self.graph.snapshot()
        return PlaybookDocument(
            name=self.name,
            description=self.description,
            version=self.version,
            graph=PlaybookGraph(nodes=nodes, edges=edges, viewport=self.viewport),
            capabilities=dict(self.capabilities),
            execution_defaults=dict(self.execution_defaults),
        )

    def export(self) -> dict[str, Any]:
        """Export-file payload of the current state."""
        return export_document(self.to_document())

    def export_filename(self) -> str:
        return export_filename(self.to_document())

    async def save(self, store: PlaybookFileStore) -> str:
        """Validate and persist the playbook.

        Raises:
            SaveValidationError: If the start node is missing, or the end node
                is missing outside autonomous mode. Nothing is written.
        """
        document = self.to_document()
        validate_for_save(document)
        self.playbook_id = store.save(document, self.playbook_id)
        await self._emit(EventType.PLAYBOOK_SAVED, {"playbook_id": self.playbook_id, "name": self.name})
        return self.playbook_id

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def variables(self, node_id: str) -> list[VariableGroup]:
        """Template variables usable in ``node_id``'s configuration."""
        return self.resolver.resolve(node_id, self.graph.nodes, self.graph.edges)

    async def layout(self, direction: LayoutDirection | str | None = None) -> LayoutResult:
        """Re-layout the graph in place and remember the direction."""
        direction = LayoutDirection(direction or self.layout_direction)
        result = self.layout_engine.layout(self.graph.nodes, self.graph.edges, direction)
        self.graph.replace(result.nodes, result.edges)
        self.layout_direction = direction
        await self._emit(EventType.GRAPH_LAID_OUT, {"direction": direction.value, "nodes": len(result.nodes)})
        return result

    def copy(self) -> str | None:
        """Clipboard text for the current selection."""
        return copy_selection(self.graph)

    async def paste(
        self,
        payload: Any,
        *,
        mode: PasteMode = PasteMode.AUTO,
        confirm: ConfirmCallback | None = None,
    ) -> PasteResult:
        """Paste clipboard text or parsed JSON into the graph.

        A full replacement also adopts the payload's name, description,
        capabilities and execution defaults where present.
        """
        result = paste(self.graph, payload, mode=mode, confirm=confirm, offset=self.settings.editor.paste_offset)
        if result.metadata:
            self.name = result.metadata.get("name", self.name)
            self.description = result.metadata.get("description", self.description)
            self.capabilities = dict(result.metadata.get("capabilities", self.capabilities))
            self.execution_defaults = dict(result.metadata.get("execution_defaults", self.execution_defaults))
        if result.changed:
            await self._emit(
                EventType.GRAPH_PASTED,
                {"outcome": result.outcome.value, "nodes": result.nodes_added, "edges": result.edges_added},
            )
        return result

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self.bus is not None:
            await self.bus.emit(event_type, data)
