"""CLI commands for inspecting and validating Reavion settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate Reavion configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings."""
    from reavion.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from pydantic import ValidationError

    from reavion.settings import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1) from None

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment:  {settings.env}")
    console.print(f"  Layout:       {settings.layout.direction.value} (node_sep={settings.layout.node_sep:g}, rank_sep={settings.layout.rank_sep:g})")
    console.print(f"  Playbook dir: {settings.storage.playbook_dir}")
