"""Save-time structural validation of a playbook."""

from __future__ import annotations

from collections.abc import Sequence

from reavion.exceptions import SaveValidationError
from reavion.graph.models import ExecutionMode, Node, PlaybookDocument
from reavion.graph.registry import NodeType

MISSING_START = "Playbook must have a Start node."
MISSING_END = "Playbook must have an End node (or set Mode to Autonomous)."


def save_errors(nodes: Sequence[Node], execution_mode: str) -> list[str]:
    """Return the reasons a graph cannot be saved (empty when it can).

    A start node is always required. An end node is required unless the
    playbook runs fully autonomously.
    """
    types = {n.type for n in nodes}
    errors: list[str] = []
    if NodeType.START.value not in types:
        errors.append(MISSING_START)
    if NodeType.END.value not in types and execution_mode != ExecutionMode.AUTO.value:
        errors.append(MISSING_END)
    return errors


def validate_for_save(document: PlaybookDocument) -> None:
    """Raise on the first structural problem that blocks saving.

    Raises:
        SaveValidationError: If the start node is missing, or the end node is
            missing while the mode is not ``auto``.
    """
    errors = save_errors(document.graph.nodes, document.execution_mode)
    if errors:
        raise SaveValidationError(errors[0])
