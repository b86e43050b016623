"""Reavion settings: TOML layers plus ``REAVION_*`` environment overrides."""

from reavion.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
