"""Layered auto-layout for playbook graphs.

Sugiyama-style pipeline on a ``networkx.DiGraph``:

  1. Cycle removal (greedy feedback arc set; loop back-edges are reversed)
  2. Layer assignment (longest path over the acyclic copy)
  3. Dummy nodes for edges spanning more than one layer
  4. Crossing minimisation (barycenter sweeps)
  5. Coordinate assignment with inter-node and inter-rank spacing

Every step iterates in stored node/edge order, so the result depends only on
the graph structure and node sizes, never on current positions. Running the
layout twice therefore yields the same coordinates.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import networkx as nx

from reavion.graph.models import Edge, LayoutDirection, Node, Position
from reavion.graph.registry import SPECIALIZED_HANDLES

logger = logging.getLogger(__name__)

DEFAULT_NODE_WIDTH = 250.0
DEFAULT_NODE_HEIGHT = 120.0
DEFAULT_NODE_SEP = 250.0
DEFAULT_RANK_SEP = 300.0
DEFAULT_CROSSING_PASSES = 24

DUMMY_PREFIX = "__dummy_"

# Standardised (source, target) handle pair per direction.
GENERIC_HANDLES: dict[LayoutDirection, tuple[str, str]] = {
    LayoutDirection.TOP_TO_BOTTOM: ("bottom-source", "top-target"),
    LayoutDirection.LEFT_TO_RIGHT: ("right-source", "left-target"),
}


@dataclass
class LayoutResult:
    """Positioned copies of the input nodes and handle-normalised edges."""

    nodes: list[Node]
    edges: list[Edge]


# ---------------------------------------------------------------------------
# Pipeline phases
# ---------------------------------------------------------------------------


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Order nodes so that few edges point backwards (Eades, Lin, Smyth).

    Sinks are peeled to the right, sources to the left and, when only cycles
    remain, the node with the largest out/in surplus goes left. Ties are
    broken by insertion order.
    """
    active: list[str] = list(graph.nodes)
    out_deg = {n: graph.out_degree(n) for n in active}
    in_deg = {n: graph.in_degree(n) for n in active}
    left: list[str] = []
    right: list[str] = []

    def remove(node: str) -> None:
        active.remove(node)
        for succ in graph.successors(node):
            if succ in active:
                in_deg[succ] -= 1
        for pred in graph.predecessors(node):
            if pred in active:
                out_deg[pred] -= 1

    while active:
        changed = True
        while changed:
            changed = False
            for node in [n for n in active if out_deg[n] == 0]:
                remove(node)
                right.append(node)
                changed = True
            for node in [n for n in active if in_deg[n] == 0]:
                remove(node)
                left.append(node)
                changed = True
        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            remove(best)
            left.append(best)

    right.reverse()
    return left + right


def remove_cycles(graph: nx.DiGraph) -> nx.DiGraph:
    """Return an acyclic copy of ``graph`` with back-edges reversed."""
    position = {node: i for i, node in enumerate(greedy_fas_ordering(graph))}
    dag = nx.DiGraph()
    dag.add_nodes_from(graph.nodes(data=True))
    for src, tgt in graph.edges():
        if src == tgt:
            continue
        if position[src] > position[tgt]:
            dag.add_edge(tgt, src)
        else:
            dag.add_edge(src, tgt)
    return dag


def assign_layers(dag: nx.DiGraph) -> dict[str, int]:
    """Longest-path layering: every edge goes from layer ``r`` to ``> r``."""
    layers: dict[str, int] = {}
    for node in nx.topological_sort(dag):
        preds = [layers[p] + 1 for p in dag.predecessors(node)]
        layers[node] = max(preds, default=0)
    return layers


def insert_dummy_nodes(dag: nx.DiGraph, layers: dict[str, int]) -> nx.DiGraph:
    """Split long edges into chains so every edge joins adjacent layers.

    Dummy nodes are zero-sized and are added to ``layers`` in place.
    """
    aug = nx.DiGraph()
    aug.add_nodes_from(dag.nodes(data=True))
    for counter, (src, tgt) in enumerate(list(dag.edges())):
        span = layers[tgt] - layers[src]
        if span <= 1:
            aug.add_edge(src, tgt)
            continue
        prev = src
        for step in range(1, span):
            dummy = f"{DUMMY_PREFIX}{counter}_{step}"
            aug.add_node(dummy, width=0.0, height=0.0, dummy=True)
            layers[dummy] = layers[src] + step
            aug.add_edge(prev, dummy)
            prev = dummy
        aug.add_edge(prev, tgt)
    return aug


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Count pairwise edge crossings between consecutive layers."""
    total = 0
    for idx in range(len(ordering) - 1):
        tgt_pos = {nid: i for i, nid in enumerate(ordering[idx + 1])}
        pairs: list[tuple[int, int]] = []
        for sp, src in enumerate(ordering[idx]):
            for nb in graph.successors(src):
                if nb in tgt_pos:
                    pairs.append((sp, tgt_pos[nb]))
        for i in range(len(pairs)):
            for j in range(i + 1, len(pairs)):
                (a0, a1), (b0, b1) = pairs[i], pairs[j]
                if (a0 - b0) * (a1 - b1) < 0:
                    total += 1
    return total


def _barycenter(neighbours: list[str], pos: dict[str, float], fallback: float) -> float:
    values = [pos[nb] for nb in neighbours if nb in pos]
    if not values:
        return fallback
    return sum(values) / len(values)


def minimise_crossings(graph: nx.DiGraph, layers: dict[str, int], max_passes: int) -> list[list[str]]:
    """Order each layer by alternating barycenter sweeps.

    The initial in-layer order is insertion order. The best ordering seen is
    kept; sweeping stops as soon as a pass fails to improve on it.
    """
    layer_count = max(layers.values(), default=-1) + 1
    ordering: list[list[str]] = [[] for _ in range(layer_count)]
    for node in graph.nodes:
        ordering[layers[node]].append(node)

    best = [list(layer) for layer in ordering]
    best_count = count_crossings(ordering, graph)
    if best_count == 0:
        return best

    for _ in range(max_passes):
        for idx in range(1, layer_count):
            prev = {nid: float(i) for i, nid in enumerate(ordering[idx - 1])}
            current = {nid: float(i) for i, nid in enumerate(ordering[idx])}
            ordering[idx].sort(
                key=lambda n, p=prev, c=current: _barycenter(list(graph.predecessors(n)), p, c[n])
            )
        for idx in range(layer_count - 2, -1, -1):
            nxt = {nid: float(i) for i, nid in enumerate(ordering[idx + 1])}
            current = {nid: float(i) for i, nid in enumerate(ordering[idx])}
            ordering[idx].sort(
                key=lambda n, s=nxt, c=current: _barycenter(list(graph.successors(n)), s, c[n])
            )
        count = count_crossings(ordering, graph)
        if count >= best_count:
            break
        best = [list(layer) for layer in ordering]
        best_count = count
        if count == 0:
            break
    return best


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class LayoutEngine:
    """Recompute node positions with a ranked, layered placement.

    Args:
        node_sep: Gap between neighbouring nodes in one rank.
        rank_sep: Gap between consecutive ranks. Generous enough that loop
            back-edges route clear of forward edges.
        default_width: Width used for nodes without a measured size.
        default_height: Height used for nodes without a measured size.
        crossing_passes: Upper bound on barycenter sweeps.
    """

    def __init__(
        self,
        node_sep: float = DEFAULT_NODE_SEP,
        rank_sep: float = DEFAULT_RANK_SEP,
        default_width: float = DEFAULT_NODE_WIDTH,
        default_height: float = DEFAULT_NODE_HEIGHT,
        crossing_passes: int = DEFAULT_CROSSING_PASSES,
    ) -> None:
        self.node_sep = node_sep
        self.rank_sep = rank_sep
        self.default_width = default_width
        self.default_height = default_height
        self.crossing_passes = crossing_passes

    def node_size(self, node: Node) -> tuple[float, float]:
        """Measured size of ``node``, or the default box when unmeasured."""
        return (node.width or self.default_width, node.height or self.default_height)

    def build_graph(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> nx.DiGraph:
        """Auxiliary layout graph: one edge per connection, handles ignored."""
        graph = nx.DiGraph()
        for node in nodes:
            width, height = self.node_size(node)
            graph.add_node(node.id, width=width, height=height, dummy=False)
        for edge in edges:
            if edge.source in graph and edge.target in graph:
                graph.add_edge(edge.source, edge.target)
        return graph

    def centers(
        self, nodes: Sequence[Node], edges: Sequence[Edge], direction: LayoutDirection
    ) -> dict[str, tuple[float, float]]:
        """Compute node centre points, normalised so the bounding box starts at (0, 0)."""
        graph = self.build_graph(nodes, edges)
        if graph.number_of_nodes() == 0:
            return {}
        dag = remove_cycles(graph)
        layers = assign_layers(dag)
        aug = insert_dummy_nodes(dag, layers)
        ordering = minimise_crossings(aug, layers, self.crossing_passes)

        vertical = direction == LayoutDirection.TOP_TO_BOTTOM

        def extent(node_id: str) -> tuple[float, float]:
            attrs = aug.nodes[node_id]
            w, h = attrs["width"], attrs["height"]
            # (cross-axis size, rank-axis size)
            return (w, h) if vertical else (h, w)

        raw: dict[str, tuple[float, float]] = {}
        rank_cursor = 0.0
        for layer in ordering:
            thickness = max((extent(n)[1] for n in layer), default=0.0)
            rank_center = rank_cursor + thickness / 2
            spans = [extent(n)[0] for n in layer]
            total = sum(spans) + self.node_sep * max(len(layer) - 1, 0)
            cross_cursor = -total / 2
            for node_id, span in zip(layer, spans):
                raw[node_id] = (cross_cursor + span / 2, rank_center)
                cross_cursor += span + self.node_sep
            rank_cursor += thickness + self.rank_sep

        real = list(graph.nodes)
        min_cross = min(raw[n][0] - extent(n)[0] / 2 for n in real)
        min_rank = min(raw[n][1] - extent(n)[1] / 2 for n in real)

        out: dict[str, tuple[float, float]] = {}
        for node_id in real:
            cross, rank = raw[node_id]
            cross -= min_cross
            rank -= min_rank
            out[node_id] = (cross, rank) if vertical else (rank, cross)
        return out

    def layout(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        direction: LayoutDirection | str = LayoutDirection.TOP_TO_BOTTOM,
    ) -> LayoutResult:
        """Lay out ``nodes`` and normalise generic edge handles.

        Inputs are not modified. Each returned node carries its new top-left
        position (``center - size / 2``) and ``data.layout_direction``. Edges
        bound to a specialised source handle (``true``/``false``/``item``/
        ``done``) are returned unchanged; all others get the direction's
        standard handle pair and the ``smoothstep`` type.
        """
        direction = LayoutDirection(direction)
        centers = self.centers(nodes, edges, direction)

        laid_out: list[Node] = []
        for node in nodes:
            copy = node.model_copy(deep=True)
            width, height = self.node_size(node)
            cx, cy = centers[node.id]
            copy.position = Position(x=cx - width / 2, y=cy - height / 2)
            copy.data.layout_direction = direction
            laid_out.append(copy)

        source_handle, target_handle = GENERIC_HANDLES[direction]
        rewired: list[Edge] = []
        for edge in edges:
            copy = edge.model_copy(deep=True)
            if not (edge.source_handle and edge.source_handle in SPECIALIZED_HANDLES):
                copy.source_handle = source_handle
                copy.target_handle = target_handle
                copy.type = "smoothstep"
            rewired.append(copy)

        logger.info("Laid out %d nodes (%s)", len(laid_out), direction.value)
        return LayoutResult(nodes=laid_out, edges=rewired)
