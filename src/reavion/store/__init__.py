"""Playbook persistence."""

from reavion.store.playbook_store import PlaybookFileStore

__all__ = ["PlaybookFileStore"]
