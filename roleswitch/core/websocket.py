"""WebSocket management module."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = logging.getLogger(__name__)


def _to_payload(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_payload(item) for item in value]
    return value


class ConnectionManager:
    """Tracks connected clients and fans out change notifications."""

    def __init__(self) -> None:
        self.active_connections: set["WebSocket"] = set()
        self._pending: set[asyncio.Task[None]] = set()

    def connect(self, websocket: "WebSocket") -> None:
        self.active_connections.add(websocket)

    def disconnect(self, websocket: "WebSocket") -> None:
        self.active_connections.discard(websocket)

    async def broadcast_event(self, event_type: str, data: Any) -> None:
        """Broadcast event to all connected WebSocket clients."""
        if not self.active_connections:
            return

        message = {"type": event_type, "data": _to_payload(data)}
        disconnected = set()

        for websocket in list(self.active_connections):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(
                    "WebSocket broadcast failed, marking client for removal",
                    extra={"event_type": event_type, "error": str(e)},
                )
                disconnected.add(websocket)

        # Clean up disconnected clients
        for ws in disconnected:
            self.active_connections.discard(ws)

    def publish(self, event_type: str, data: Any) -> None:
        """Schedule a broadcast from synchronous signal handlers."""
        if not self.active_connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, dropping broadcast", extra={"event_type": event_type})
            return

        task = loop.create_task(self.broadcast_event(event_type, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def subscriber(self, event_type: str):
        """Signal callback that publishes each value under ``event_type``."""

        def handle(value: Any) -> None:
            self.publish(event_type, value)

        return handle
