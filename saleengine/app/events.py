"""WebSocket fan-out of engine events.

Every message uses the v1 envelope ``{"version", "type", "timestamp",
"payload"}``. Services publish flat dicts carrying a ``type`` key (for
example ``{"type": "bid_placed", "item_id": ...}``); the bus moves the other
keys into ``payload`` before sending.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocket
from pydantic import BaseModel, Field

from saleengine.infrastructure.db import iso_utcnow
from saleengine.infrastructure.observability import get_logger

MESSAGE_FORMAT_VERSION = "1"

logger = get_logger(__name__)


class EngineEvent(BaseModel):
    version: str = MESSAGE_FORMAT_VERSION
    type: str
    timestamp: str = Field(default_factory=iso_utcnow)
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def wrap(cls, event: dict[str, Any]) -> "EngineEvent":
        fields = dict(event)
        return cls(type=str(fields.pop("type")), payload=fields)


class EngineEventBus:
    """Connected sockets and the broadcast to them.

    A socket whose send fails is dropped; one broken client never blocks the
    others or the publisher.
    """

    def __init__(self) -> None:
        self._sockets: set[WebSocket] = set()

    async def subscribe(self, websocket: WebSocket, server_version: str) -> None:
        await websocket.accept()
        self._sockets.add(websocket)
        ready = EngineEvent(
            type="connection_ready",
            payload={
                "server_version": server_version,
                "message_format_version": MESSAGE_FORMAT_VERSION,
            },
        )
        await websocket.send_json(ready.model_dump())

    async def unsubscribe(self, websocket: WebSocket) -> None:
        self._sockets.discard(websocket)

    async def publish(self, event: dict[str, Any]) -> None:
        message = EngineEvent.wrap(event).model_dump()
        sockets = list(self._sockets)
        results = await asyncio.gather(
            *(socket.send_json(message) for socket in sockets), return_exceptions=True
        )
        for socket, result in zip(sockets, results):
            if isinstance(result, Exception):
                logger.debug("Dropping event subscriber: %s", result)
                self._sockets.discard(socket)


__all__ = ["EngineEvent", "EngineEventBus", "MESSAGE_FORMAT_VERSION"]
