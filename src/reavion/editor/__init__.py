"""Playbook editing sessions and save-time validation."""

from reavion.editor.session import PlaybookSession, sanitize_graph, skeleton_document
from reavion.editor.validation import save_errors, validate_for_save

__all__ = ["PlaybookSession", "sanitize_graph", "save_errors", "skeleton_document", "validate_for_save"]
