"""FastAPI app for Reavion — playbook REST API and run monitor."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reavion.api.playbook_routes import playbook_router
from reavion.api.routes import router
from reavion.api.ws_routes import ws_router
from reavion.exceptions import ConstraintViolation, DuplicateNodeIdError, InvalidConnection
from reavion.settings import get_settings

try:
    from importlib.metadata import version

    VERSION = version("reavion")
except Exception:
    VERSION = "0.0.0"


async def _conflict(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()

    application = FastAPI(
        title="Reavion",
        description="Playbook graph engine: storage, layout, variable scope and run monitoring.",
        version=VERSION,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Graph rule violations in a request body or a stored playbook.
    application.add_exception_handler(ConstraintViolation, _conflict)
    application.add_exception_handler(DuplicateNodeIdError, _conflict)
    application.add_exception_handler(InvalidConnection, _conflict)

    application.include_router(router)
    application.include_router(playbook_router)
    application.include_router(ws_router)
    return application


app = create_app()
