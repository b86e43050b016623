"""Variable scope resolution for template autocomplete.

For a given node, ``VariableScopeResolver`` lists the template variables its
configuration may reference: the outputs of every upstream node (declared
``outputs_schema`` entries, plus the fixed field set of list-sourcing nodes),
followed by the global catalogues that do not depend on the graph.

Template tokens have the form ``{{producer.key}}``. The helpers at the bottom
of this module extract such tokens from a node's ``config`` and report those
that name a node which is not upstream of it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, Field

from reavion.graph.models import Edge, Node
from reavion.graph.registry import LIST_SOURCE_TYPES, define
from reavion.graph.walk import ancestors

logger = logging.getLogger(__name__)

# ``{{producer.key}}`` with optional surrounding whitespace inside the braces.
TEMPLATE_RE = re.compile(r"\{\{\s*([\w-]+)\.([\w.-]+)\s*\}\}")

# Namespaces that never refer to a graph node.
GLOBAL_NAMESPACES: frozenset[str] = frozenset({"target", "playbooks", "lists", "mcp", "apis", "agent"})

# Substrings marking a variable as a list a loop can iterate over.
ITERABLE_MARKERS: tuple[str, ...] = ("items", "accounts", "list")

AGENT_DECIDES_EXAMPLE = "Let the AI choose the best target on page"


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class Variable(BaseModel):
    """One insertable template variable."""

    label: str
    value: str
    example: str | None = None


class VariableGroup(BaseModel):
    """Variables contributed by one producer (a node or a global catalogue)."""

    name: str
    node_id: str | None = None
    variables: list[Variable] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Global catalogues
# ---------------------------------------------------------------------------


class PlaybookRef(BaseModel):
    id: str
    name: str
    description: str | None = None


class TargetListRef(BaseModel):
    id: str
    name: str
    target_count: int = 0


class McpServerRef(BaseModel):
    id: str
    name: str
    config: dict[str, Any] = Field(default_factory=dict)


class ApiToolRef(BaseModel):
    id: str
    name: str
    endpoint: str | None = None


class GlobalCatalog(BaseModel):
    """Saved resources exposed to every node regardless of the graph."""

    playbooks: list[PlaybookRef] = Field(default_factory=list)
    target_lists: list[TargetListRef] = Field(default_factory=list)
    mcp_servers: list[McpServerRef] = Field(default_factory=list)
    api_tools: list[ApiToolRef] = Field(default_factory=list)


# Returns one sample target (``url``, ``name``, ``email``, ...) for a list id.
SampleLookup = Callable[[str], Mapping[str, Any] | None]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class VariableScopeResolver:
    """Compute the ordered variable groups available to a node.

    The upstream walk is an iterative depth-first traversal over incoming
    edges in their stored order. Each predecessor contributes its group the
    first time it is reached; the visited set is seeded with the target node
    so back-edges terminate the walk. The output depends only on the edge
    order, the node data and the catalogue.

    Args:
        catalog: Global catalogues appended after the upstream groups.
        sample_lookup: Optional source of live example values for
            list-sourcing nodes, keyed by ``config["list_id"]``.
    """

    def __init__(self, catalog: GlobalCatalog | None = None, sample_lookup: SampleLookup | None = None) -> None:
        self.catalog = catalog or GlobalCatalog()
        self._sample_lookup = sample_lookup

    def resolve(self, node_id: str, nodes: Sequence[Node], edges: Sequence[Edge]) -> list[VariableGroup]:
        """Return upstream groups followed by the global groups."""
        return self.upstream_groups(node_id, nodes, edges) + self.global_groups()

    def upstream_groups(self, node_id: str, nodes: Sequence[Node], edges: Sequence[Edge]) -> list[VariableGroup]:
        """Return the groups contributed by nodes upstream of ``node_id``."""
        by_id = {n.id: n for n in nodes}
        incoming: dict[str, list[Edge]] = {}
        for edge in edges:
            incoming.setdefault(edge.target, []).append(edge)

        groups: list[VariableGroup] = []
        visited = {node_id}
        stack: list[Iterator[Edge]] = [iter(incoming.get(node_id, ()))]
        while stack:
            edge = next(stack[-1], None)
            if edge is None:
                stack.pop()
                continue
            source = edge.source
            if source in visited:
                continue
            visited.add(source)
            node = by_id.get(source)
            if node is None:
                continue
            group = self._group_for(node)
            if group is not None:
                groups.append(group)
            stack.append(iter(incoming.get(source, ())))
        return groups

    def _group_for(self, node: Node) -> VariableGroup | None:
        definition = define(node.type)
        variables: list[Variable] = []

        if definition is not None and definition.outputs_schema:
            for out in definition.outputs_schema:
                variables.append(
                    Variable(label=out.label, value=f"{{{{{node.id}.{out.template_key}}}}}", example=out.example)
                )

        if node.type in LIST_SOURCE_TYPES:
            variables.extend(self._list_variables(node))

        if not variables:
            return None
        name = node.data.label or (definition.label if definition else "") or node.id
        return VariableGroup(name=name, node_id=node.id, variables=variables)

    def _list_variables(self, node: Node) -> list[Variable]:
        sample: Mapping[str, Any] | None = None
        list_id = node.data.config.get("list_id")
        if list_id and self._sample_lookup is not None:
            sample = self._sample_lookup(str(list_id))
        sample = sample or {}

        def example(key: str) -> str | None:
            value = sample.get(key)
            return None if value is None else str(value)

        return [
            Variable(label="URL", value="{{target.url}}", example=example("url")),
            Variable(label="Name", value="{{target.name}}", example=example("name")),
            Variable(label="Email", value="{{target.email}}", example=example("email")),
            Variable(label="Metadata", value="{{target.metadata}}", example="JSON"),
        ]

    def global_groups(self) -> list[VariableGroup]:
        """Return the graph-independent groups; the agent group is always last."""
        groups: list[VariableGroup] = []
        cat = self.catalog

        if cat.playbooks:
            groups.append(
                VariableGroup(
                    name="Playbooks",
                    variables=[
                        Variable(label=p.name, value=f"{{{{playbooks.{p.id}}}}}", example=p.description)
                        for p in cat.playbooks
                    ],
                )
            )
        if cat.target_lists:
            groups.append(
                VariableGroup(
                    name="Target Lists",
                    variables=[
                        Variable(label=t.name, value=f"{{{{lists.{t.id}}}}}", example=f"{t.target_count} targets")
                        for t in cat.target_lists
                    ],
                )
            )
        if cat.mcp_servers:
            groups.append(
                VariableGroup(
                    name="MCP Servers",
                    variables=[
                        Variable(
                            label=s.name,
                            value=f"{{{{mcp.{s.id}}}}}",
                            example=s.config.get("command") or s.config.get("url") or "No config",
                        )
                        for s in cat.mcp_servers
                    ],
                )
            )
        if cat.api_tools:
            groups.append(
                VariableGroup(
                    name="API Tools",
                    variables=[
                        Variable(label=a.name, value=f"{{{{apis.{a.id}}}}}", example=a.endpoint)
                        for a in cat.api_tools
                    ],
                )
            )

        groups.append(
            VariableGroup(
                name="Agent",
                variables=[Variable(label="Agent Decides", value="{{agent.decide}}", example=AGENT_DECIDES_EXAMPLE)],
            )
        )
        return groups


def iterable_variables(groups: Sequence[VariableGroup]) -> list[Variable]:
    """Variables suitable as a loop's array source."""
    return [v for g in groups for v in g.variables if any(m in v.value for m in ITERABLE_MARKERS)]


# ---------------------------------------------------------------------------
# Template references
# ---------------------------------------------------------------------------


def _walk_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for v in value.values():
            yield from _walk_strings(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from _walk_strings(v)


def template_references(config: Mapping[str, Any]) -> list[tuple[str, str]]:
    """Return ``(producer, key)`` pairs for every token found in ``config``.

    Nested maps and lists are searched. Duplicates are kept once, in order
    of first appearance.
    """
    seen: set[tuple[str, str]] = set()
    refs: list[tuple[str, str]] = []
    for text in _walk_strings(config):
        for match in TEMPLATE_RE.finditer(text):
            ref = (match.group(1), match.group(2))
            if ref not in seen:
                seen.add(ref)
                refs.append(ref)
    return refs


def dangling_references(node_id: str, nodes: Sequence[Node], edges: Sequence[Edge]) -> list[str]:
    """Return tokens in a node's config that name a node not upstream of it.

    Tokens in one of the global namespaces (``target``, ``lists``, ...) are
    never reported.
    """
    node = next((n for n in nodes if n.id == node_id), None)
    if node is None:
        return []
    upstream = set(ancestors(node_id, edges))
    dangling: list[str] = []
    for producer, key in template_references(node.data.config):
        if producer in GLOBAL_NAMESPACES or producer in upstream:
            continue
        dangling.append(f"{{{{{producer}.{key}}}}}")
    if dangling:
        logger.debug("Node %s has %d dangling template reference(s)", node_id, len(dangling))
    return dangling
