"""Playbook graph engine — the node/edge model and the algorithms over it.

Modules:

* ``models`` — ``Node``, ``Edge``, ``PlaybookDocument`` data models.
* ``registry`` — ``NodeType`` tags and their ``NodeTypeDefinition`` metadata.
* ``store`` — ``GraphStore``, the single writer of a playbook's graph.
* ``scope`` — ``VariableScopeResolver`` for template autocomplete.
* ``layout`` — ``LayoutEngine`` layered auto-layout.
* ``transplant`` — copy / paste / import / export.
"""

from reavion.graph.layout import LayoutEngine, LayoutResult
from reavion.graph.models import Edge, LayoutDirection, Node, NodeData, PlaybookDocument, Position
from reavion.graph.registry import NodeType, define
from reavion.graph.scope import GlobalCatalog, VariableGroup, VariableScopeResolver
from reavion.graph.store import GraphStore
from reavion.graph.transplant import PasteMode, PasteOutcome, PasteResult, paste

__all__ = [
    "Edge",
    "GlobalCatalog",
    "GraphStore",
    "LayoutDirection",
    "LayoutEngine",
    "LayoutResult",
    "Node",
    "NodeData",
    "NodeType",
    "PasteMode",
    "PasteOutcome",
    "PasteResult",
    "PlaybookDocument",
    "Position",
    "VariableGroup",
    "VariableScopeResolver",
    "define",
    "paste",
]
