"""Graph transplant: copy, paste, import and export of playbook graphs.

Clipboard and file payloads arrive in one of four shapes:

* a full export document (``{name, description, version, graph, ...}``)
* a ``{nodes, edges}`` fragment, optionally nested under ``graph``
* a bare array of node objects
* a single node object

A paste either replaces the live graph wholesale (a *full* playbook) or
merges a *fragment* into it with fresh ids, an offset and a selection.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from reavion.exceptions import ConstraintViolation, DuplicateNodeIdError, ImportValidationError
from reavion.graph.models import Edge, Node, PlaybookDocument, Position, new_id
from reavion.graph.registry import SINGLETON_TYPES, default_label
from reavion.graph.store import GraphStore, check_nodes

logger = logging.getLogger(__name__)

DEFAULT_PASTE_OFFSET = 50.0
CONFIRM_REPLACE_PROMPT = "You are pasting a full playbook. Replace current contents?"
SKIPPED_SINGLETONS_WARNING = "Skipped Start/End nodes (already exist)."
IMPORTED_SUFFIX = " (Imported)"
REQUIRED_IMPORT_KEYS: tuple[str, ...] = ("graph", "capabilities")

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_WHITESPACE_RE = re.compile(r"\s+")

# Playbook-level keys a full paste may carry, with their accepted types.
_METADATA_SHAPES: dict[str, type] = {
    "name": str,
    "description": str,
    "capabilities": Mapping,
    "execution_defaults": Mapping,
}

# Asked before a full paste replaces a non-trivial graph; returns True to proceed.
ConfirmCallback = Callable[[str], bool]


class PasteMode(str, Enum):
    """How a paste payload is applied.

    ``AUTO`` infers full vs fragment from the payload and the live graph;
    ``FULL`` and ``FRAGMENT`` let the caller decide explicitly.
    """

    AUTO = "auto"
    FULL = "full"
    FRAGMENT = "fragment"


class PasteOutcome(str, Enum):
    REPLACED = "replaced"
    MERGED = "merged"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    IGNORED = "ignored"


@dataclass
class PasteResult:
    """What a paste did to the live graph.

    ``metadata`` holds the playbook-level keys (name, description,
    capabilities, execution_defaults) present in a full payload; the caller
    applies them to its document.
    """

    outcome: PasteOutcome
    nodes_added: int = 0
    edges_added: int = 0
    warning: str | None = None
    fit_view: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.outcome in (PasteOutcome.REPLACED, PasteOutcome.MERGED)


@dataclass
class NormalizedPayload:
    """Raw node/edge dicts extracted from a payload, plus its envelope."""

    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    source: Any = None

    @property
    def has_playbook_metadata(self) -> bool:
        """Whether the payload looks like a whole playbook rather than a selection."""
        data = self.source
        if not isinstance(data, Mapping):
            return False
        return bool(data.get("graph") or data.get("capabilities") or (data.get("name") and data.get("description")))


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_document(document: PlaybookDocument) -> dict[str, Any]:
    """Serialize a playbook to the export-file shape."""
    return document.to_export_dict()


def export_json(document: PlaybookDocument) -> str:
    """Export a playbook as pretty-printed JSON."""
    return json.dumps(export_document(document), indent=2)


def export_filename(document: PlaybookDocument) -> str:
    """File name for an export: lower-cased name, whitespace runs as ``_``."""
    return f"{_WHITESPACE_RE.sub('_', document.name.lower())}_v{document.version}.json"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def validate_import(data: Any) -> None:
    """Check that ``data`` is an importable export document.

    Raises:
        ImportValidationError: If ``data`` is not an object or lacks
            ``graph`` or ``capabilities``.
    """
    if not isinstance(data, Mapping):
        raise ImportValidationError(list(REQUIRED_IMPORT_KEYS))
    missing = [key for key in REQUIRED_IMPORT_KEYS if not data.get(key)]
    if missing:
        raise ImportValidationError(missing)


def import_document(data: Any) -> PlaybookDocument:
    """Validate an export document and return it as a new playbook.

    The name is suffixed with ``" (Imported)"``. Node and edge ids are kept.

    Raises:
        ImportValidationError: See ``validate_import``; also raised when node
            ids repeat or a start/end node appears twice.
        pydantic.ValidationError: If the graph does not match the data model.
    """
    validate_import(data)
    document = PlaybookDocument.model_validate(data)
    try:
        check_nodes(document.graph.nodes)
    except (ConstraintViolation, DuplicateNodeIdError) as e:
        raise ImportValidationError(reason=str(e)) from None
    document.name = f"{data.get('name') or ''}{IMPORTED_SUFFIX}"
    logger.info("Imported playbook %r (%d nodes)", document.name, len(document.graph.nodes))
    return document


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------


def copy_selection(store: GraphStore) -> str | None:
    """Serialize the selected nodes and the edges between them.

    Returns:
        Pretty-printed ``{nodes, edges}`` JSON, or ``None`` when nothing is
        selected.
    """
    selected = store.selected_nodes()
    if not selected:
        return None
    ids = {n.id for n in selected}
    edges = [e for e in store.edges if e.source in ids and e.target in ids]
    payload = {"nodes": [n.to_dict() for n in selected], "edges": [e.to_dict() for e in edges]}
    logger.debug("Copied %d nodes, %d edges", len(selected), len(edges))
    return json.dumps(payload, indent=2)


# ---------------------------------------------------------------------------
# Paste
# ---------------------------------------------------------------------------


def parse_clipboard(text: str) -> Any | None:
    """Parse clipboard text as JSON, unwrapping a markdown code fence.

    Returns ``None`` for anything that is not JSON; ordinary text pastes are
    not an error.
    """
    if not text or not text.strip():
        return None
    if "```" in text:
        match = _FENCE_RE.search(text)
        if match and match.group(1):
            text = match.group(1)
    try:
        return json.loads(text)
    except ValueError:
        logger.debug("Clipboard text is not JSON; ignoring paste")
        return None


def _looks_like_node(item: Any) -> bool:
    return isinstance(item, Mapping) and bool(item.get("id") and item.get("type") and item.get("position"))


def normalize_payload(data: Any) -> NormalizedPayload:
    """Extract raw node and edge dicts from any accepted payload shape.

    Unrecognised shapes yield an empty payload.
    """
    if isinstance(data, list):
        if data and all(_looks_like_node(i) for i in data):
            return NormalizedPayload(nodes=list(data), edges=[], source=data)
        return NormalizedPayload(nodes=[], edges=[], source=data)

    if isinstance(data, Mapping):
        graph = data.get("graph") if isinstance(data.get("graph"), Mapping) else None
        if data.get("nodes") or (graph and graph.get("nodes")):
            nodes = (graph.get("nodes") if graph else None) or data.get("nodes") or []
            edges = (graph.get("edges") if graph else None) or data.get("edges") or []
            return NormalizedPayload(nodes=list(nodes), edges=list(edges), source=data)
        if _looks_like_node(data):
            return NormalizedPayload(nodes=[dict(data)], edges=[], source=data)

    return NormalizedPayload(nodes=[], edges=[], source=data)


def classify(payload: NormalizedPayload, store: GraphStore, mode: PasteMode = PasteMode.AUTO) -> PasteMode:
    """Decide whether a paste replaces the graph (``FULL``) or merges (``FRAGMENT``).

    In ``AUTO`` mode the paste is full when the payload carries playbook
    metadata or the live graph is still the start/end skeleton.
    """
    if mode is not PasteMode.AUTO:
        return mode
    if payload.has_playbook_metadata or store.is_minimal_skeleton():
        return PasteMode.FULL
    return PasteMode.FRAGMENT


def _build_nodes(raw: list[dict[str, Any]]) -> list[Node]:
    nodes = [Node.model_validate(item) for item in raw]
    for node in nodes:
        if not node.data.label:
            node.data.label = default_label(node.type)
    return nodes


def _playbook_metadata(source: Any) -> dict[str, Any] | None:
    """Playbook-level fields of a full paste, or ``None`` if one has the wrong shape."""
    if not isinstance(source, Mapping):
        return {}
    metadata = {k: source[k] for k in _METADATA_SHAPES if source.get(k)}
    for key, value in metadata.items():
        if not isinstance(value, _METADATA_SHAPES[key]):
            logger.debug("Ignoring paste: %s is %s", key, type(value).__name__)
            return None
    return metadata


def paste(
    store: GraphStore,
    payload: Any,
    *,
    mode: PasteMode = PasteMode.AUTO,
    confirm: ConfirmCallback | None = None,
    offset: float = DEFAULT_PASTE_OFFSET,
) -> PasteResult:
    """Apply a clipboard or file payload to ``store``.

    Args:
        store: The live graph.
        payload: Clipboard text, or an already-parsed JSON value.
        mode: Full/fragment decision; ``AUTO`` uses ``classify``.
        confirm: Asked before a full paste replaces a graph that holds more
            than the start/end skeleton. Without a callback the replacement
            is declined.
        offset: Added to both coordinates of every merged node.

    Returns:
        A ``PasteResult``. Malformed payloads, including a full payload whose
        ``capabilities`` or ``execution_defaults`` is not an object, give
        ``IGNORED`` and leave the graph untouched.

    Raises:
        ConstraintViolation: If a full payload holds two start or two end
            nodes. The graph is left unchanged.
        DuplicateNodeIdError: If a full payload repeats a node id. The graph
            is left unchanged.
    """
    data = parse_clipboard(payload) if isinstance(payload, str) else payload
    if data is None:
        return PasteResult(PasteOutcome.IGNORED)

    normalized = normalize_payload(data)
    if not normalized.nodes:
        return PasteResult(PasteOutcome.IGNORED)

    try:
        incoming_nodes = _build_nodes(normalized.nodes)
        incoming_edges = [Edge.model_validate(item) for item in normalized.edges]
    except (ValidationError, TypeError) as exc:
        logger.debug("Ignoring malformed paste payload: %s", exc)
        return PasteResult(PasteOutcome.IGNORED)

    if classify(normalized, store, mode) is PasteMode.FULL:
        return _paste_full(store, normalized, incoming_nodes, incoming_edges, confirm)
    return _paste_fragment(store, incoming_nodes, incoming_edges, offset)


def _paste_full(
    store: GraphStore,
    normalized: NormalizedPayload,
    nodes: list[Node],
    edges: list[Edge],
    confirm: ConfirmCallback | None,
) -> PasteResult:
    metadata = _playbook_metadata(normalized.source)
    if metadata is None:
        return PasteResult(PasteOutcome.IGNORED)

    if not store.is_minimal_skeleton():
        approved = confirm(CONFIRM_REPLACE_PROMPT) if confirm is not None else False
        if not approved:
            logger.info("Full playbook paste cancelled")
            return PasteResult(PasteOutcome.CANCELLED)

    store.replace(nodes, edges)
    logger.info("Replaced graph with pasted playbook (%d nodes, %d edges)", len(store.nodes), len(store.edges))
    return PasteResult(
        PasteOutcome.REPLACED,
        nodes_added=len(store.nodes),
        edges_added=len(store.edges),
        fit_view=True,
        metadata=metadata,
    )


def _paste_fragment(store: GraphStore, nodes: list[Node], edges: list[Edge], offset: float) -> PasteResult:
    present = {t for t in SINGLETON_TYPES if store.has_type(t)}
    survivors: list[Node] = []
    for node in nodes:
        if node.type in SINGLETON_TYPES:
            if node.type in present:
                continue
            present.add(node.type)
        survivors.append(node)

    if not survivors:
        logger.warning(SKIPPED_SINGLETONS_WARNING)
        return PasteResult(PasteOutcome.SKIPPED, warning=SKIPPED_SINGLETONS_WARNING)

    id_map: dict[str, str] = {}
    for node in survivors:
        fresh = new_id()
        id_map[node.id] = fresh
        node.id = fresh
        node.position = Position(x=node.position.x + offset, y=node.position.y + offset)
        node.selected = True

    remapped: list[Edge] = []
    for edge in edges:
        if edge.source not in id_map or edge.target not in id_map:
            continue
        edge.id = new_id()
        edge.source = id_map[edge.source]
        edge.target = id_map[edge.target]
        edge.selected = True
        remapped.append(edge)

    store.set_selection(False)
    store.append(survivors, remapped)
    logger.info("Pasted %d nodes, %d edges", len(survivors), len(remapped))
    warning = SKIPPED_SINGLETONS_WARNING if len(survivors) < len(nodes) else None
    return PasteResult(PasteOutcome.MERGED, nodes_added=len(survivors), edges_added=len(remapped), warning=warning)
