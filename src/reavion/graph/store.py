"""Graph store — the single owner and writer of a playbook's nodes and edges.

All structural mutations funnel through ``GraphStore`` so the invariants
hold at every point other components read a snapshot:

* at most one ``start`` and one ``end`` node;
* node ids are unique and every edge references existing nodes;
* deleting a node removes every incident edge.

Cycles are allowed: loop bodies connect back to their controlling node.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from reavion.exceptions import ConstraintViolation, DuplicateNodeIdError, InvalidConnection
from reavion.graph.models import Edge, Node, NodeData, Position, new_id
from reavion.graph.registry import NodeType, SINGLETON_TYPES, default_label, define

logger = logging.getLogger(__name__)

# Style applied to freshly drawn connections.
DEFAULT_EDGE_STYLE: dict[str, Any] = {"strokeWidth": 2}
DEFAULT_EDGE_TYPE = "smoothstep"


def check_nodes(nodes: Iterable[Node]) -> None:
    """Check a node set before it becomes a graph.

    Raises:
        DuplicateNodeIdError: If two nodes share an id.
        ConstraintViolation: If there is more than one node of a singleton type.
    """
    ids: set[str] = set()
    singletons: set[str] = set()
    for node in nodes:
        if node.id in ids:
            raise DuplicateNodeIdError(node.id)
        ids.add(node.id)
        if node.type in SINGLETON_TYPES:
            if node.type in singletons:
                raise ConstraintViolation(node.type)
            singletons.add(node.type)


class GraphStore:
    """Owns the node and edge collections of one playbook.

    Args:
        nodes: Initial nodes (ids must be unique, at most one start and one end).
        edges: Initial edges (edges with a missing endpoint are dropped).
    """

    def __init__(self, nodes: Iterable[Node] = (), edges: Iterable[Edge] = ()) -> None:
        self._nodes: list[Node] = []
        self._edges: list[Edge] = []
        self.replace(list(nodes), list(edges))

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        """Return the live node list (mutate only through the store)."""
        return self._nodes

    @property
    def edges(self) -> list[Edge]:
        """Return the live edge list (mutate only through the store)."""
        return self._edges

    def get_node(self, node_id: str) -> Node | None:
        """Retrieve a node by id."""
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Edge | None:
        """Retrieve an edge by id."""
        for edge in self._edges:
            if edge.id == edge_id:
                return edge
        return None

    def has_type(self, node_type: str | NodeType) -> bool:
        """Whether any node of ``node_type`` exists."""
        key = node_type.value if isinstance(node_type, NodeType) else node_type
        return any(n.type == key for n in self._nodes)

    def is_minimal_skeleton(self) -> bool:
        """Whether the graph still holds only its start and end nodes."""
        return len(self._nodes) <= 2 and all(n.type in SINGLETON_TYPES for n in self._nodes)

    def selected_nodes(self) -> list[Node]:
        """Return the currently selected nodes."""
        return [n for n in self._nodes if n.selected]

    def snapshot(self) -> tuple[list[Node], list[Edge]]:
        """Return deep copies of the current nodes and edges."""
        return (
            [n.model_copy(deep=True) for n in self._nodes],
            [e.model_copy(deep=True) for e in self._edges],
        )

    # ------------------------------------------------------------------
    # Node mutations
    # ------------------------------------------------------------------

    def add_node(self, node_type: str | NodeType, position: Position | Mapping[str, float] | None = None) -> Node:
        """Append a node of ``node_type`` with a fresh id and empty config.

        Raises:
            ConstraintViolation: If ``node_type`` is a singleton type that
                already exists in the graph.
        """
        key = node_type.value if isinstance(node_type, NodeType) else node_type
        if key in SINGLETON_TYPES and self.has_type(key):
            logger.warning("Rejected second %s node", key)
            raise ConstraintViolation(key)
        if define(key) is None:
            logger.warning("Adding node of unrecognized type %r", key)

        if position is None:
            pos = Position()
        elif isinstance(position, Position):
            pos = position.model_copy()
        else:
            pos = Position(**position)

        node = Node(
            id=new_id(),
            type=key,
            position=pos,
            data=NodeData(label=default_label(key), config={}),
        )
        self._nodes.append(node)
        logger.debug("Added %s node %s", key, node.id)
        return node

    def update_node_data(self, node_id: str, data: NodeData | Mapping[str, Any]) -> Node | None:
        """Merge ``data`` over the node's current data.

        Keys present in ``data`` replace the existing values; other keys are
        kept. Unknown ids are ignored.

        Returns:
            The updated node, or ``None`` when ``node_id`` is absent.
        """
        node = self.get_node(node_id)
        if node is None:
            return None
        if isinstance(data, NodeData):
            patch = data.model_dump(by_alias=True, exclude_unset=True)
        else:
            patch = dict(data)
            for name, field in NodeData.model_fields.items():
                if field.alias and name in patch:
                    patch[field.alias] = patch.pop(name)
        merged = {**node.data.model_dump(by_alias=True), **patch}
        node.data = NodeData.model_validate(merged)
        return node

    def move_node(self, node_id: str, x: float, y: float) -> None:
        """Set a node's top-left position."""
        node = self.get_node(node_id)
        if node is not None:
            node.position = Position(x=x, y=y)

    def delete_node(self, node_id: str) -> bool:
        """Remove a node and every edge incident to it.

        Returns:
            ``True`` if the node existed.
        """
        before = len(self._nodes)
        self._nodes = [n for n in self._nodes if n.id != node_id]
        if len(self._nodes) == before:
            return False
        self._edges = [e for e in self._edges if e.source != node_id and e.target != node_id]
        logger.debug("Deleted node %s and its edges", node_id)
        return True

    # ------------------------------------------------------------------
    # Edge mutations
    # ------------------------------------------------------------------

    def connect(
        self,
        source: str,
        target: str,
        source_handle: str | None = None,
        target_handle: str | None = None,
    ) -> Edge:
        """Append an edge from ``source`` to ``target``.

        Back-edges to earlier nodes are allowed (loop bodies).

        Raises:
            InvalidConnection: On a self-loop or a missing endpoint.
        """
        if source == target:
            logger.warning("Rejected self-connection on %s", source)
            raise InvalidConnection(source, target)
        for endpoint in (source, target):
            if self.get_node(endpoint) is None:
                raise InvalidConnection(source, target, f"unknown node {endpoint}")

        edge = Edge(
            id=new_id(),
            source=source,
            target=target,
            source_handle=source_handle,
            target_handle=target_handle,
            type=DEFAULT_EDGE_TYPE,
            animated=False,
            style=dict(DEFAULT_EDGE_STYLE),
        )
        self._edges.append(edge)
        return edge

    def delete_edge(self, edge_id: str) -> bool:
        """Remove an edge by id."""
        before = len(self._edges)
        self._edges = [e for e in self._edges if e.id != edge_id]
        return len(self._edges) != before

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def replace(self, nodes: list[Node], edges: list[Edge]) -> None:
        """Replace both collections wholesale.

        Raises:
            ConstraintViolation: See ``check_nodes``.
            DuplicateNodeIdError: See ``check_nodes``.
        """
        check_nodes(nodes)

        ids = {n.id for n in nodes}
        kept = [e for e in edges if e.source in ids and e.target in ids]
        if len(kept) != len(edges):
            logger.warning("Dropped %d edge(s) referencing missing nodes", len(edges) - len(kept))
        self._nodes = list(nodes)
        self._edges = kept

    def append(self, nodes: list[Node], edges: list[Edge]) -> None:
        """Append already-validated nodes and edges (used by paste)."""
        self._nodes.extend(nodes)
        self._edges.extend(edges)

    def set_selection(self, selected: bool) -> None:
        """Select or deselect every node and edge."""
        for node in self._nodes:
            node.selected = selected
        for edge in self._edges:
            edge.selected = selected
