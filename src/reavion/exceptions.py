"""Reavion-specific exception hierarchy."""

from __future__ import annotations


class ReavionError(Exception):
    """Base exception for all Reavion-specific errors."""


class ConstraintViolation(ReavionError):
    """Raised when a mutation would add a second singleton node (start/end).

    Attributes:
        node_type: The singleton node type that already exists.
    """

    def __init__(self, node_type: str) -> None:
        self.node_type = node_type
        super().__init__(f"Only one {node_type.capitalize()} node allowed.")


class DuplicateNodeIdError(ReavionError):
    """Raised when two nodes in one graph share an id.

    Attributes:
        node_id: The repeated id.
    """

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Duplicate node id '{node_id}'.")


class InvalidConnection(ReavionError):
    """Raised when an edge cannot be created between two nodes.

    Attributes:
        source: Source node id.
        target: Target node id.
    """

    def __init__(self, source: str, target: str, reason: str = "") -> None:
        self.source = source
        self.target = target
        self.reason = reason or "a node cannot connect to itself"
        super().__init__(f"Invalid connection {source} → {target}: {self.reason}")


class ImportValidationError(ReavionError):
    """Raised when an imported document lacks required keys or breaks a graph rule.

    Attributes:
        missing: The required keys that were absent.
        reason: Replaces the missing-keys message when set.
    """

    def __init__(self, missing: list[str] | None = None, reason: str = "") -> None:
        self.missing = missing or []
        self.reason = reason
        super().__init__(f"Invalid playbook format: {reason or 'missing ' + ', '.join(self.missing)}")


class SaveValidationError(ReavionError):
    """Raised when a playbook fails structural validation before saving."""


class PlaybookNotFoundError(ReavionError):
    """Raised when the document store has no playbook with the given id."""

    def __init__(self, playbook_id: str) -> None:
        self.playbook_id = playbook_id
        super().__init__(f"Playbook '{playbook_id}' not found")
