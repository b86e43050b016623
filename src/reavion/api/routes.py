"""Service-level API routes."""

from __future__ import annotations

from fastapi import APIRouter

from reavion.graph.registry import definitions_by_category

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/node-types")
def node_types() -> dict[str, list[dict[str, object]]]:
    """The node palette, grouped by category."""
    return {
        category.value: [
            {
                "type": d.type.value,
                "label": d.label,
                "description": d.description,
                "inputs": d.input_port_count,
                "outputs": d.output_port_count,
                "outputs_schema": [
                    {"label": o.label, "key": o.template_key, "example": o.example} for o in d.outputs_schema or ()
                ],
            }
            for d in defs
        ]
        for category, defs in definitions_by_category().items()
    }


@router.get("/runs")
def active_runs() -> dict[str, list[str]]:
    """Playbooks with a run monitor currently connected."""
    from reavion.api.ws_routes import list_active_runs

    return {"active": list_active_runs()}
