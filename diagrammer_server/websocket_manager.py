"""
WebSocket fan-out of editor events.

Every event is a small JSON envelope `{"type": ..., **payload}`; clients
re-fetch the full state over REST when they see one:
- document_updated: the diagram changed (locally or from the remote store)
- jobs_updated: a migration job was created or advanced
- notice: a transient message for the user
"""
import asyncio
import json
import logging
from enum import Enum

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    DOCUMENT_UPDATED = "document_updated"
    JOBS_UPDATED = "jobs_updated"
    NOTICE = "notice"


class WebSocketManager:
    """Tracks open client sockets and pushes events to all of them."""

    def __init__(self):
        self._clients: set[WebSocket] = set()

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._clients.add(websocket)
        logger.info("Client connected (%d open)", len(self._clients))

    async def disconnect(self, websocket: WebSocket):
        self._clients.discard(websocket)
        logger.info("Client disconnected (%d open)", len(self._clients))

    async def send_event(self, event_type: EventType, **payload):
        """Send one event to every client; clients whose send fails are dropped."""
        if not self._clients:
            return

        text = json.dumps({"type": event_type.value, **payload})
        clients = list(self._clients)
        results = await asyncio.gather(
            *(client.send_text(text) for client in clients),
            return_exceptions=True
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.debug("Dropping client after failed %s send: %s", event_type.value, result)
                self._clients.discard(client)

    async def notify_document_updated(self, document_id: str | None = None):
        await self.send_event(EventType.DOCUMENT_UPDATED, document_id=document_id)

    async def notify_jobs_updated(self, active: int):
        await self.send_event(EventType.JOBS_UPDATED, active=active)

    async def notify_notice(self, notice: dict):
        await self.send_event(EventType.NOTICE, notice=notice)


ws_manager = WebSocketManager()
