"""POST endpoints for controlling the background loops."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/sync/restart")
async def restart_sync(request: Request) -> JSONResponse:
    """Restart the catalog preloader from its configured start page."""
    lifecycle = request.app.state.lifecycle

    await lifecycle.restart_sync()
    log.info("preloader_restarted_via_dashboard")
    return JSONResponse(content=lifecycle.get_status()["preloader"])


@router.post("/monitor/check")
async def check_prices(request: Request) -> JSONResponse:
    """Run one price alert cycle now and return the alerts it raised."""
    monitor = request.app.state.monitor

    alerts = await monitor.check_prices()
    log.info("price_check_via_dashboard", alerts=len(alerts))
    return JSONResponse(content={"alerts": [a.to_dict() for a in alerts]})
