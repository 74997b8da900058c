"""WebSocket hub — per-team summary pushes and a periodic heartbeat."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

log = structlog.get_logger("dorametrics.ws")

CONNECTED_MESSAGE = {"type": "connected", "message": "Connected to DORA Metrics"}
HEARTBEAT_INTERVAL = 30.0  # seconds

SummaryFn = Callable[[int], Awaitable[dict]]


class WebSocketHub:
    """Tracks connected clients and answers ``subscribe`` / ``ping`` messages.

    One instance per application, stored on ``app.state.ws_hub``.
    """

    def __init__(
        self,
        summary_fn: SummaryFn,
        *,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self._summary_fn = summary_fn
        self._heartbeat_interval = heartbeat_interval
        self._clients: set[WebSocket] = set()
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="ws-heartbeat")

    async def stop(self) -> None:
        """Stop the heartbeat and close every client."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            await asyncio.gather(self._heartbeat_task, return_exceptions=True)
            self._heartbeat_task = None
        for client in list(self._clients):
            try:
                await client.close()
            except Exception:
                log.debug("ws.close_failed")
        self._clients.clear()

    # ── connection ─────────────────────────────────────────────────────────

    async def serve(self, websocket: WebSocket) -> None:
        """Accept *websocket* and handle its messages until it disconnects."""
        await websocket.accept()
        self._clients.add(websocket)
        log.info("ws.connected", clients=len(self._clients))
        try:
            await websocket.send_json(CONNECTED_MESSAGE)
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    log.warning("ws.non_text_frame")
                    continue
                await self.handle_message(websocket, raw)
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.discard(websocket)
            log.info("ws.disconnected", clients=len(self._clients))

    async def handle_message(self, websocket: WebSocket, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("ws.malformed_message")
            return
        if not isinstance(data, dict):
            log.warning("ws.malformed_message")
            return

        msg_type = data.get("type")
        if msg_type == "subscribe":
            team_id = data.get("teamId")
            if team_id:
                await self._send_metrics(websocket, team_id)
        elif msg_type == "ping":
            await websocket.send_json({"type": "pong"})
        else:
            log.info("ws.unknown_message", message_type=msg_type)

    async def _send_metrics(self, websocket: WebSocket, team_id: Any) -> None:
        try:
            summary = await self._summary_fn(int(team_id))
        except Exception:
            log.exception("ws.summary_failed", team_id=team_id)
            return
        await websocket.send_json({"type": "metrics_update", "teamId": team_id, "data": summary})

    # ── broadcast ──────────────────────────────────────────────────────────

    async def broadcast(self, message: dict) -> None:
        """Send *message* to every client; clients whose send fails are dropped."""
        for client in list(self._clients):
            try:
                await client.send_json(message)
            except Exception as exc:
                log.warning("ws.send_failed", error=str(exc))
                self._clients.discard(client)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await self.broadcast(
                {"type": "heartbeat", "timestamp": datetime.now(timezone.utc).isoformat()}
            )
