"""
JIANGHU Engine v1.0 — WebSocket Manager
Pushes state, phase and log updates to connected browser clients.
"""

import json
import asyncio
import logging

from fastapi import WebSocket

logger = logging.getLogger("jianghu.web")


class ConnectionManager:
    """Manages active WebSocket connections and broadcasts events."""

    def __init__(self):
        self.active: list[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.active.append(ws)
        logger.debug(f"WebSocket connected ({len(self.active)} clients)")

    def disconnect(self, ws: WebSocket):
        if ws in self.active:
            self.active.remove(ws)
            logger.debug(f"WebSocket disconnected ({len(self.active)} clients)")

    async def broadcast(self, event: str, data=None):
        """Send an event to all connected clients. Dead sockets are dropped."""
        message = json.dumps({"event": event, "data": data or {}}, ensure_ascii=False)
        disconnected = []
        for ws in self.active:
            try:
                await ws.send_text(message)
            except (RuntimeError, ConnectionError) as e:
                logger.debug(f"Broadcast to client failed: {e}")
                disconnected.append(ws)
        for ws in disconnected:
            self.disconnect(ws)

    def broadcast_soon(self, event: str, data=None):
        """
        Schedule a broadcast from synchronous engine callbacks.
        Outside a running event loop (startup, tests) nothing is sent.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No event loop, dropped '{event}' broadcast")
            return
        loop.create_task(self.broadcast(event, data))

    @property
    def client_count(self) -> int:
        return len(self.active)
