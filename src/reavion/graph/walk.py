"""Cycle-safe graph walks over edge lists.

Loop nodes create deliberate back-edges, so every walk here is iterative
and guarded by a visited set.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from reavion.graph.models import Edge


def _adjacency(edges: Iterable[Edge], *, reverse: bool = False) -> dict[str, list[str]]:
    adj: dict[str, list[str]] = {}
    for edge in edges:
        src, dst = (edge.target, edge.source) if reverse else (edge.source, edge.target)
        adj.setdefault(src, []).append(dst)
    return adj


def _bfs(start: str, adj: dict[str, list[str]]) -> list[str]:
    visited = {start}
    order: list[str] = []
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for nxt in adj.get(current, ()):
            if nxt in visited:
                continue
            visited.add(nxt)
            order.append(nxt)
            queue.append(nxt)
    return order


def descendants(node_id: str, edges: Iterable[Edge]) -> list[str]:
    """Return every node reachable forward from ``node_id``, in BFS order.

    ``node_id`` itself is never part of the result, even when a back-edge
    leads to it.
    """
    return _bfs(node_id, _adjacency(edges))


def ancestors(node_id: str, edges: Iterable[Edge]) -> list[str]:
    """Return every node from which ``node_id`` is reachable, in BFS order."""
    return _bfs(node_id, _adjacency(edges, reverse=True))
