"""Unified CLI entry point for Reavion.

Config precedence: settings.default.toml -> settings.{env}.toml -> settings.local.toml -> env vars (REAVION_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging
from typing import Optional

import typer

from reavion.cli.playbook_cmd import playbook_app
from reavion.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("reavion")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "reavion — playbook graph engine CLI. "
    "Author, validate, lay out and replay automation playbooks. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (REAVION_* with __) -> CLI flags."
)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"

app = typer.Typer(add_completion=True, help=APP_HELP)

app.add_typer(playbook_app, name="playbook")
app.add_typer(settings_app, name="settings")


def configure_logging(level: str) -> None:
    """Configure the root logger once for CLI use (stderr)."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override settings.log_level (DEBUG, INFO, ...)."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"reavion {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    if log_level is None:
        from reavion.settings import get_settings

        # Broken settings are reported by ``settings validate``.
        try:
            log_level = get_settings().log_level
        except Exception:
            log_level = "INFO"
    configure_logging(log_level)


if __name__ == "__main__":
    app()
