"""
Live resource updates over WebSocket.

Browsers connect to ``/ws`` and send ``{"type": "subscribe", "channel":
"resources"}``. From then on they receive one message per successful create,
update or delete:

    {"type": "resource_created", "channel": "resources",
     "data": {"resource": {...}}, "timestamp": "..."}

Delivery is best effort: a client that misses a message catches up on its
next full list.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set

import orjson
from fastapi import WebSocket

from phrontier.shared.logger import get_logger

logger = get_logger(__name__)

RESOURCES_CHANNEL = "resources"


class MessageType(str, Enum):
    RESOURCE_CREATED = "resource_created"
    RESOURCE_UPDATED = "resource_updated"
    RESOURCE_DELETED = "resource_deleted"

    # Client requests
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"

    # Replies
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    PONG = "pong"
    ERROR = "error"


def make_message(type: MessageType, data: Optional[Dict[str, Any]] = None, channel: str = RESOURCES_CHANNEL) -> str:
    return orjson.dumps({
        "type": type.value,
        "channel": channel,
        "data": data or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }).decode()


class ResourceBroadcaster:
    """Tracks open sockets and pushes resource changes to subscribers."""

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._subscribers: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        await self._send(websocket, make_message(MessageType.CONNECTED, channel="system"))

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        self._subscribers.discard(websocket)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def _send(self, websocket: WebSocket, text: str) -> bool:
        try:
            await websocket.send_text(text)
            return True
        except Exception as e:
            logger.warning("Dropping WebSocket after failed send: %s", e)
            self.disconnect(websocket)
            return False

    async def handle_message(self, websocket: WebSocket, text: str) -> Optional[str]:
        """Answer one client request; returns the reply to send, if any."""
        try:
            request = orjson.loads(text)
            kind = MessageType(request.get("type"))
        except (orjson.JSONDecodeError, ValueError, AttributeError) as e:
            return make_message(MessageType.ERROR, {"error": f"Invalid message: {e}"}, channel="system")

        if kind == MessageType.PING:
            return make_message(MessageType.PONG, channel="system")

        if kind in (MessageType.SUBSCRIBE, MessageType.UNSUBSCRIBE):
            channel = request.get("channel") or (request.get("data") or {}).get("channel")
            if channel != RESOURCES_CHANNEL:
                return make_message(MessageType.ERROR, {"error": f"Unknown channel: {channel!r}"}, channel="system")
            if kind == MessageType.SUBSCRIBE:
                self._subscribers.add(websocket)
                return make_message(MessageType.SUBSCRIBED)
            self._subscribers.discard(websocket)
            return make_message(MessageType.UNSUBSCRIBED)

        return make_message(MessageType.ERROR, {"error": f"Unsupported request: {kind.value}"}, channel="system")

    async def publish(self, type: MessageType, data: Dict[str, Any]) -> int:
        """Send one change to every subscriber; returns how many got it."""
        text = make_message(type, data)
        sent = 0
        for websocket in list(self._subscribers):
            if await self._send(websocket, text):
                sent += 1
        return sent


broadcaster = ResourceBroadcaster()


async def notify_resource_created(resource: Dict[str, Any]) -> None:
    """Tell subscribers a resource was published (camelCase record)."""
    await broadcaster.publish(MessageType.RESOURCE_CREATED, {"resource": resource})


async def notify_resource_updated(resource: Dict[str, Any]) -> None:
    await broadcaster.publish(MessageType.RESOURCE_UPDATED, {"resource": resource})


async def notify_resource_deleted(resource_id: str) -> None:
    await broadcaster.publish(MessageType.RESOURCE_DELETED, {"id": resource_id})
