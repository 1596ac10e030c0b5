"""Periodic WebSocket update loop for real-time dashboard refresh.

Collects the lifecycle status and local store counts and broadcasts them as
one JSON document to all connected WebSocket clients.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import FastAPI

log = structlog.get_logger(__name__)


async def build_snapshot(app: FastAPI) -> dict:
    """Current status document, as served by GET /api/status."""
    snapshot = app.state.lifecycle.get_status()
    store = getattr(app.state, "store", None)
    if store is not None:
        snapshot["store"] = await store.get_data_status()
    favorites = getattr(app.state, "favorites", None)
    if favorites is not None:
        snapshot["favorites"] = len(favorites)
    alert_history = getattr(app.state, "alert_history", None)
    if alert_history is not None:
        snapshot["recent_alerts"] = alert_history.recent(5)
    return snapshot


async def dashboard_update_loop(app: FastAPI) -> None:
    """Periodically broadcast a status snapshot via WebSocket.

    Runs until cancelled. Iterations with no connected clients skip the
    snapshot entirely.

    Args:
        app: The FastAPI application with state containing hub, lifecycle,
             store, favorites and alert_history.
    """
    update_interval = getattr(app.state, "update_interval", 5)

    log.info("dashboard_update_loop_started", interval=update_interval)

    while True:
        try:
            await asyncio.sleep(update_interval)

            hub = app.state.hub
            if hub.client_count == 0:
                continue

            await hub.publish(await build_snapshot(app))

        except asyncio.CancelledError:
            log.info("dashboard_update_loop_cancelled")
            break
        except Exception:
            log.warning("dashboard_update_loop_error", exc_info=True)
            # Continue loop on error -- don't crash the update loop
            await asyncio.sleep(1)
