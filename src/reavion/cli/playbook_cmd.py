"""CLI commands for playbook files and the playbook store.

Subcommands for creating, inspecting, validating, laying out and replaying
playbooks without needing the API server running. ``<file>`` arguments are
export-format JSON files.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

playbook_app = typer.Typer(help="Manage playbooks — create, inspect, validate, lay out and replay runs.")
console = Console()

_STATUS_STYLE = {"running": "yellow", "success": "green", "error": "red"}


def _get_playbook_dir() -> Path:
    """Return the resolved playbook directory from settings."""
    from reavion.settings import get_settings

    return Path(get_settings().storage.playbook_dir)


def _read_json(path: Path) -> Any:
    if not path.exists():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(code=1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ Invalid JSON:[/red] {e}")
        raise typer.Exit(code=1) from None


def _open_session(path: Path, **kwargs: Any) -> Any:
    """Read a playbook file into a ``PlaybookSession``, exiting on bad input."""
    from pydantic import ValidationError

    from reavion.editor.session import PlaybookSession
    from reavion.exceptions import ReavionError
    from reavion.graph.models import PlaybookDocument

    data = _read_json(path)
    try:
        return PlaybookSession(PlaybookDocument.model_validate(data), **kwargs)
    except ValidationError as e:
        _print_validation_errors(e)
        raise typer.Exit(code=1) from None
    except ReavionError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from None


def _print_validation_errors(error: Any) -> None:
    console.print("[red]✗ Validation errors:[/red]")
    for err in error.errors():
        loc = " → ".join(str(x) for x in err["loc"])
        console.print(f"  {loc}: {err['msg']}")


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# reavion playbook new <file>
# ---------------------------------------------------------------------------


@playbook_app.command("new")
def playbook_new(
    path: Path = typer.Argument(..., help="Where to write the new playbook."),
    name: str = typer.Option("New Playbook", "--name", "-n", help="Playbook name."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file."),
) -> None:
    """Write a skeleton playbook holding only Start and End."""
    from reavion.editor.session import skeleton_document

    if path.exists() and not force:
        console.print(f"[red]File exists:[/red] {path} (use --force to overwrite)")
        raise typer.Exit(code=1)
    _write_json(path, skeleton_document(name).to_export_dict())
    console.print(f"[green]✓[/green] Created {path}")


# ---------------------------------------------------------------------------
# reavion playbook show <file>
# ---------------------------------------------------------------------------


@playbook_app.command("show")
def playbook_show(
    path: Path = typer.Argument(..., help="Path to a playbook JSON file."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Display a playbook's nodes and edges."""
    from reavion.graph.registry import define

    session = _open_session(path)
    if json_output:
        console.print_json(json.dumps(session.export(), indent=2))
        return

    console.print(f"[bold cyan]{session.name}[/bold cyan]  v{session.version}")
    console.print(f"  Description: {session.description or '(none)'}")
    console.print(f"  Mode:        {session.execution_defaults.get('mode', 'observe')}")

    table = Table(title=f"Nodes ({len(session.graph.nodes)})")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Label")
    table.add_column("Category", style="dim")
    table.add_column("Position", justify="right")
    for node in session.graph.nodes:
        definition = define(node.type)
        type_cell = node.type if definition else f"[red]{node.type} (Unrecognized)[/red]"
        table.add_row(
            node.id,
            type_cell,
            node.data.label,
            definition.category.value if definition else "",
            f"{node.position.x:.0f}, {node.position.y:.0f}",
        )
    console.print(table)

    if session.graph.edges:
        edges = Table(title=f"Edges ({len(session.graph.edges)})")
        edges.add_column("Source", style="cyan")
        edges.add_column("Handle", style="dim")
        edges.add_column("Target", style="cyan")
        for edge in session.graph.edges:
            edges.add_row(edge.source, edge.source_handle or "", edge.target)
        console.print(edges)


# ---------------------------------------------------------------------------
# reavion playbook validate <file>
# ---------------------------------------------------------------------------


@playbook_app.command("validate")
def playbook_validate(
    path: Path = typer.Argument(..., help="Path to a playbook JSON file."),
) -> None:
    """Check import shape, save rules and template references."""
    from reavion.editor.validation import save_errors
    from reavion.exceptions import ImportValidationError
    from reavion.graph.scope import dangling_references
    from reavion.graph.transplant import validate_import

    data = _read_json(path)
    try:
        validate_import(data)
    except ImportValidationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from None

    session = _open_session(path)
    problems = save_errors(session.graph.nodes, str(session.execution_defaults.get("mode") or "observe"))
    for node in session.graph.nodes:
        for token in dangling_references(node.id, session.graph.nodes, session.graph.edges):
            problems.append(f"Node {node.id} references {token}, which is not upstream")

    if problems:
        console.print("[red]✗ Validation errors:[/red]")
        for problem in problems:
            console.print(f"  {problem}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓[/green] Valid playbook: {session.name} "
        f"({len(session.graph.nodes)} nodes, {len(session.graph.edges)} edges)"
    )


# ---------------------------------------------------------------------------
# reavion playbook layout <file>
# ---------------------------------------------------------------------------


@playbook_app.command("layout")
def playbook_layout(
    path: Path = typer.Argument(..., help="Path to a playbook JSON file."),
    direction: str = typer.Option("TB", "--direction", "-d", help="TB (top to bottom) or LR (left to right)."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write here instead of in place."),
) -> None:
    """Auto-layout a playbook file."""
    from reavion.graph.models import LayoutDirection

    try:
        rank_dir = LayoutDirection(direction.upper())
    except ValueError:
        console.print(f"[red]Unknown direction:[/red] {direction} (expected TB or LR)")
        raise typer.Exit(code=1) from None

    session = _open_session(path)
    asyncio.run(session.layout(rank_dir))
    target = output or path
    _write_json(target, session.export())
    console.print(f"[green]✓[/green] Laid out {len(session.graph.nodes)} nodes ({rank_dir.value}) → {target}")


# ---------------------------------------------------------------------------
# reavion playbook variables <file> <node-id>
# ---------------------------------------------------------------------------


@playbook_app.command("variables")
def playbook_variables(
    path: Path = typer.Argument(..., help="Path to a playbook JSON file."),
    node_id: str = typer.Argument(..., help="Node whose available variables to list."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """List the template variables a node's configuration can use."""
    session = _open_session(path)
    if session.graph.get_node(node_id) is None:
        console.print(f"[red]Node not found:[/red] {node_id}")
        raise typer.Exit(code=1)

    groups = session.variables(node_id)
    if json_output:
        console.print_json(json.dumps([g.model_dump() for g in groups], indent=2))
        return

    table = Table(title=f"Variables for {node_id}")
    table.add_column("Group", style="cyan")
    table.add_column("Label")
    table.add_column("Token", style="yellow")
    table.add_column("Example", style="dim", max_width=40)
    for group in groups:
        for var in group.variables:
            table.add_row(group.name, var.label, var.value, var.example or "")
    console.print(table)


# ---------------------------------------------------------------------------
# reavion playbook replay <file> <events.jsonl>
# ---------------------------------------------------------------------------


@playbook_app.command("replay")
def playbook_replay(
    path: Path = typer.Argument(..., help="Path to a playbook JSON file."),
    events: Path = typer.Argument(..., help="JSONL file of status events ({nodeId, status, message?})."),
    keep: bool = typer.Option(False, "--keep", "-k", help="Show the overlay before the end-of-run reset."),
    events_out: Optional[Path] = typer.Option(
        None, "--events-out", "-e", help="Write the run's bus events to this file as JSONL."
    ),
) -> None:
    """Replay a recorded status-event stream through the execution overlay."""
    from pydantic import ValidationError

    from reavion.monitoring.event_bus import EventBus, JsonlSink
    from reavion.monitoring.tracker import StatusEvent

    if not events.exists():
        console.print(f"[red]File not found:[/red] {events}")
        raise typer.Exit(code=1)

    parsed: list[StatusEvent] = []
    for lineno, line in enumerate(events.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        try:
            parsed.append(StatusEvent.model_validate_json(line))
        except ValidationError as e:
            console.print(f"[red]✗ Bad event on line {lineno}:[/red] {e.errors()[0]['msg']}")
            raise typer.Exit(code=1) from None

    bus = EventBus()
    session = _open_session(path, bus=bus)
    tracker = session.tracker

    async def _run() -> None:
        await tracker.start_run()
        for event in parsed:
            await tracker.handle_event(event)
        if not keep:
            await tracker.complete()

    if events_out is not None:
        events_out.parent.mkdir(parents=True, exist_ok=True)
        with events_out.open("w", encoding="utf-8") as f:
            bus.add_sink(JsonlSink(f))
            asyncio.run(_run())
        console.print(f"[dim]Run events written to {events_out}[/dim]")
    else:
        asyncio.run(_run())
    overlay = tracker.overlay()

    table = Table(title=f"Execution overlay ({len(parsed)} events)")
    table.add_column("Node", style="cyan")
    table.add_column("Label")
    table.add_column("Status")
    table.add_column("Loops", justify="right")
    table.add_column("Message", style="dim", max_width=40)
    for node in session.graph.nodes:
        state = overlay["nodes"][node.id]
        status = state["status"] or ""
        style = _STATUS_STYLE.get(status)
        table.add_row(
            node.id,
            node.data.label,
            f"[{style}]{status}[/{style}]" if style else status,
            str(state["loop_count"]),
            state["message"] or "",
        )
    console.print(table)
    console.print(f"  Emphasized edges: {', '.join(overlay['emphasized_edges']) or '(none)'}")

    console.print("\n[bold]Log (newest first):[/bold]")
    for entry in tracker.logs:
        console.print(f"  {entry.message}")


# ---------------------------------------------------------------------------
# Store: list / import / export
# ---------------------------------------------------------------------------


@playbook_app.command("list")
def playbook_list(
    directory: Optional[Path] = typer.Option(None, "--dir", "-d", help="Override playbook directory."),
) -> None:
    """List playbooks in the store."""
    from reavion.store.playbook_store import PlaybookFileStore

    pb_dir = directory or _get_playbook_dir()
    documents = PlaybookFileStore(pb_dir).list()
    if not documents:
        console.print(f"No playbooks found in {pb_dir}")
        return

    table = Table(title=f"Playbooks ({pb_dir})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version", justify="right")
    table.add_column("Nodes", justify="right")
    table.add_column("Description", max_width=40)
    for playbook_id, doc in documents:
        table.add_row(playbook_id, doc.name, doc.version, str(len(doc.graph.nodes)), doc.description[:40])
    console.print(table)
    console.print(f"\n[bold]{len(documents)}[/bold] playbook(s) loaded")


@playbook_app.command("import")
def playbook_import(
    path: Path = typer.Argument(..., help="Export file to import."),
    directory: Optional[Path] = typer.Option(None, "--dir", "-d", help="Override playbook directory."),
) -> None:
    """Import an export file into the store as a new playbook."""
    from pydantic import ValidationError

    from reavion.exceptions import ImportValidationError
    from reavion.graph.transplant import import_document
    from reavion.store.playbook_store import PlaybookFileStore

    data = _read_json(path)
    try:
        document = import_document(data)
    except ImportValidationError as e:
        console.print(f"[red]✗ Failed to import playbook:[/red] {e}")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        _print_validation_errors(e)
        raise typer.Exit(code=1) from None

    playbook_id = PlaybookFileStore(directory or _get_playbook_dir()).save(document)
    console.print(f"[green]✓[/green] Imported {document.name} as {playbook_id}")


@playbook_app.command("export")
def playbook_export(
    playbook_id: str = typer.Argument(..., help="Playbook ID in the store."),
    directory: Optional[Path] = typer.Option(None, "--dir", "-d", help="Override playbook directory."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <name>_v<version>.json)."),
) -> None:
    """Export a stored playbook to a JSON file."""
    from reavion.exceptions import PlaybookNotFoundError
    from reavion.graph.transplant import export_document, export_filename
    from reavion.store.playbook_store import PlaybookFileStore

    try:
        document = PlaybookFileStore(directory or _get_playbook_dir()).load(playbook_id)
    except PlaybookNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    target = output or Path(export_filename(document))
    _write_json(target, export_document(document))
    console.print(f"[green]✓[/green] Exported {document.name} → {target}")
