"""FastAPI dashboard application factory with JSON API and WebSocket hub."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cryptotracker.dashboard.routes import actions, api, ws
from cryptotracker.dashboard.routes.ws import StatusHub
from cryptotracker.exceptions import (
    CatalogError,
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
)

log = structlog.get_logger(__name__)


def _status_for(error: CatalogError) -> int:
    if isinstance(error, InvalidInputError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, RateLimitedError):
        return 429
    return 502


async def _catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    """Translate catalog errors raised by route handlers into HTTP responses."""
    log.warning("dashboard_catalog_error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(
        status_code=_status_for(exc),
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def create_dashboard_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the dashboard application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        Configured FastAPI application with routes and WebSocket hub. Route
        handlers expect the tracker components on ``app.state``.
    """
    app = FastAPI(
        title="Crypto Tracker Dashboard",
        lifespan=lifespan,
    )

    app.state.hub = StatusHub()
    app.add_exception_handler(CatalogError, _catalog_error_handler)

    app.include_router(api.router, prefix="/api")
    app.include_router(actions.router, prefix="/actions")
    app.include_router(ws.router)

    return app
