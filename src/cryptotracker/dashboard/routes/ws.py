"""Live status feed for dashboard clients.

The hub remembers the last snapshot it published, so a client that connects
between update ticks is not left blank until the next one. A client may
send ``refresh`` to get a freshly built snapshot immediately.
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from cryptotracker.dashboard.update_loop import build_snapshot

log = structlog.get_logger(__name__)

router = APIRouter()

REFRESH_COMMAND = "refresh"


def encode_snapshot(snapshot: dict) -> str:
    # Alert timestamps and enum values are not JSON-native
    return json.dumps(snapshot, default=str)


class StatusHub:
    """Fan-out of status snapshots to every connected WebSocket."""

    def __init__(self) -> None:
        self._clients: list[WebSocket] = []
        self._latest: str | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def attach(self, ws: WebSocket) -> bool:
        """Accept the socket. Returns True when a cached snapshot was sent."""
        await ws.accept()
        self._clients.append(ws)
        log.info("status_client_attached", clients=len(self._clients))
        if self._latest is None:
            return False
        await ws.send_text(self._latest)
        return True

    def detach(self, ws: WebSocket) -> None:
        if ws in self._clients:
            self._clients.remove(ws)
        log.info("status_client_detached", clients=len(self._clients))

    async def publish(self, snapshot: dict) -> int:
        """Encode once and push to every client. Returns how many received it."""
        self._latest = encode_snapshot(snapshot)
        delivered = 0
        for ws in list(self._clients):
            try:
                await ws.send_text(self._latest)
            except Exception as e:
                if ws in self._clients:
                    self._clients.remove(ws)
                log.warning("status_client_dropped", error=str(e), clients=len(self._clients))
            else:
                delivered += 1
        return delivered


@router.websocket("/ws")
async def status_feed(websocket: WebSocket) -> None:
    hub: StatusHub = websocket.app.state.hub
    try:
        if not await hub.attach(websocket):
            await websocket.send_text(encode_snapshot(await build_snapshot(websocket.app)))
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == REFRESH_COMMAND:
                await websocket.send_text(encode_snapshot(await build_snapshot(websocket.app)))
    except WebSocketDisconnect:
        pass
    finally:
        hub.detach(websocket)
