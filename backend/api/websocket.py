"""WebSocket handler for real-time events and outgoing chat messages."""

import asyncio
import json
import logging
from collections import deque

from fastapi import WebSocket

logger = logging.getLogger(__name__)

OUTGOING_EVENT = "outgoing-message"


class ConnectionManager:
    """
    Manages WebSocket connections and broadcasts events.

    A chat bridge connected here receives ``outgoing-message`` events and
    is responsible for delivering their text to the named peer. Messages
    produced while no client is connected are kept in an outbox.
    """

    def __init__(self, outbox_size: int = 1000) -> None:
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self._outbox: deque[dict] = deque(maxlen=outbox_size)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket client connected. Total: {len(self._connections)}")
        await self._flush_outbox()

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket client disconnected. Total: {len(self._connections)}")

    async def broadcast(self, event: str, data: dict) -> int:
        """Broadcast an event to all connected clients; returns how many got it."""
        message = json.dumps({"event": event, "data": data})
        delivered = 0
        async with self._lock:
            dead: list[WebSocket] = []
            for ws in self._connections:
                try:
                    await ws.send_text(message)
                    delivered += 1
                except Exception:
                    dead.append(ws)
            for ws in dead:
                self._connections.remove(ws)
        return delivered

    async def handle_event(self, event_type: str, data: dict) -> None:
        """Event handler compatible with TransferEngine.on_event()."""
        await self.broadcast(event_type, data)

    async def send_text(self, peer_id: str, text: str) -> None:
        """``send_text`` for the engine: hand the text to the chat bridge."""
        item = {"to": peer_id, "text": text}
        if not await self.broadcast(OUTGOING_EVENT, item):
            if len(self._outbox) == self._outbox.maxlen:
                dropped = self._outbox[0]
                logger.warning(
                    f"Outbox full ({self._outbox.maxlen}); dropping oldest message for {dropped['to']}"
                )
            self._outbox.append(item)
            logger.debug(f"No bridge connected; queued message for {peer_id}")

    def drain_outbox(self) -> list[dict]:
        items = list(self._outbox)
        self._outbox.clear()
        return items

    async def _flush_outbox(self) -> None:
        for item in self.drain_outbox():
            await self.send_text(item["to"], item["text"])
