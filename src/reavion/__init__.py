"""Reavion playbook graph engine — author, lay out and monitor automation playbooks."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("reavion")
except Exception:
    __version__ = "0.0.0"
