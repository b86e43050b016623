"""Playbook API endpoints.

* ``GET /playbooks`` — list stored playbooks
* ``POST /playbooks`` — create a playbook (save-validated)
* ``GET /playbooks/{playbook_id}`` — get a playbook
* ``PUT /playbooks/{playbook_id}`` — replace a playbook (save-validated)
* ``DELETE /playbooks/{playbook_id}`` — delete a playbook
* ``GET /playbooks/{playbook_id}/export`` — download the export file
* ``POST /playbooks/import`` — import an export file as a new playbook
* ``POST /playbooks/{playbook_id}/layout`` — auto-layout and persist
* ``GET /playbooks/{playbook_id}/variables/{node_id}`` — template variables for a node
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from reavion.editor.session import PlaybookSession
from reavion.editor.validation import validate_for_save
from reavion.exceptions import ImportValidationError, PlaybookNotFoundError, SaveValidationError
from reavion.graph.models import LayoutDirection, PlaybookDocument
from reavion.graph.scope import VariableGroup
from reavion.graph.transplant import export_document, export_filename, import_document
from reavion.settings import get_settings
from reavion.store.playbook_store import PlaybookFileStore

logger = logging.getLogger(__name__)

playbook_router = APIRouter(prefix="/playbooks", tags=["playbooks"])


def get_store() -> PlaybookFileStore:
    """Return a store over the configured playbook directory."""
    return PlaybookFileStore(Path(get_settings().storage.playbook_dir))


def _load(store: PlaybookFileStore, playbook_id: str) -> PlaybookDocument:
    try:
        return store.load(playbook_id)
    except PlaybookNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


def _validated(document: PlaybookDocument) -> PlaybookDocument:
    """Return the document as it will be stored, without execution state.

    A second start or end node raises ``ConstraintViolation`` (409).
    """
    document = PlaybookSession(document).to_document()
    try:
        validate_for_save(document)
    except SaveValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    return document


def _record(playbook_id: str, document: PlaybookDocument) -> dict[str, Any]:
    return {"id": playbook_id, **export_document(document)}


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PlaybookSummary(BaseModel):
    """Lightweight playbook summary for list endpoints."""

    id: str
    name: str
    description: str = ""
    version: str = ""
    nodes_count: int
    edges_count: int


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


@playbook_router.get("", response_model=list[PlaybookSummary])
def list_playbooks() -> list[PlaybookSummary]:
    """List all stored playbooks."""
    return [
        PlaybookSummary(
            id=playbook_id,
            name=doc.name,
            description=doc.description,
            version=doc.version,
            nodes_count=len(doc.graph.nodes),
            edges_count=len(doc.graph.edges),
        )
        for playbook_id, doc in get_store().list()
    ]


@playbook_router.post("", status_code=201)
def create_playbook(document: PlaybookDocument) -> dict[str, Any]:
    """Validate and store a new playbook under a fresh id."""
    document = _validated(document)
    playbook_id = get_store().save(document)
    return _record(playbook_id, document)


@playbook_router.post("/import", status_code=201)
def import_playbook(data: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """Store an export file as a new playbook named ``"<name> (Imported)"``."""
    try:
        document = import_document(data)
    except (ImportValidationError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    playbook_id = get_store().save(document)
    return _record(playbook_id, document)


@playbook_router.get("/{playbook_id}")
def get_playbook(playbook_id: str) -> dict[str, Any]:
    """Retrieve a single playbook by id."""
    return _record(playbook_id, _load(get_store(), playbook_id))


@playbook_router.put("/{playbook_id}")
def update_playbook(playbook_id: str, document: PlaybookDocument) -> dict[str, Any]:
    """Replace an existing playbook."""
    store = get_store()
    _load(store, playbook_id)
    document = _validated(document)
    store.save(document, playbook_id)
    return _record(playbook_id, document)


@playbook_router.delete("/{playbook_id}", status_code=204)
def delete_playbook(playbook_id: str) -> None:
    """Delete a playbook."""
    try:
        get_store().delete(playbook_id)
    except PlaybookNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


# ---------------------------------------------------------------------------
# Export / layout / variables
# ---------------------------------------------------------------------------


@playbook_router.get("/{playbook_id}/export")
def export_playbook(playbook_id: str) -> JSONResponse:
    """Download a playbook as an export file."""
    document = _load(get_store(), playbook_id)
    filename = export_filename(document)
    return JSONResponse(
        export_document(document),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@playbook_router.post("/{playbook_id}/layout")
async def layout_playbook(
    playbook_id: str,
    direction: LayoutDirection = Query(LayoutDirection.TOP_TO_BOTTOM),
) -> dict[str, Any]:
    """Auto-layout a stored playbook and persist the new positions."""
    store = get_store()
    session = PlaybookSession(_load(store, playbook_id), playbook_id=playbook_id)
    await session.layout(direction)
    document = session.to_document()
    store.save(document, playbook_id)
    return _record(playbook_id, document)


@playbook_router.get("/{playbook_id}/variables/{node_id}", response_model=list[VariableGroup])
def node_variables(playbook_id: str, node_id: str) -> list[VariableGroup]:
    """Template variables usable in a node's configuration."""
    session = PlaybookSession(_load(get_store(), playbook_id), playbook_id=playbook_id)
    if session.graph.get_node(node_id) is None:
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found")
    return session.variables(node_id)
