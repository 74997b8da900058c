"""WebSocket route."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket

from dorametrics.api.websocket import WebSocketHub

router = APIRouter()


@router.websocket("/ws")
async def metrics_socket(websocket: WebSocket) -> None:
    hub: WebSocketHub = websocket.app.state.ws_hub
    await hub.serve(websocket)
