"""WebSocket connection registry for realtime cart updates."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import WebSocket, status

logger = logging.getLogger(__name__)


def cart_channel(session_id: str) -> str:
    return f"cart-{session_id}"


class ConnectionManager:
    """Manages WebSocket connections grouped by channel."""

    MAX_CONNECTIONS_PER_CHANNEL = 50
    MAX_MESSAGE_SIZE = 65536  # 64KB

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.connection_metadata: Dict[int, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, channel: str) -> bool:
        """Accept and register a socket. Returns False if the channel is full."""
        if len(self.active_connections.get(channel, [])) >= self.MAX_CONNECTIONS_PER_CHANNEL:
            logger.warning(f"WebSocket connection rejected: channel '{channel}' at capacity")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return False

        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)
        self.connection_metadata[id(websocket)] = {
            "connected_at": datetime.now(timezone.utc),
            "channel": channel,
            "last_ping": datetime.now(timezone.utc),
        }
        logger.debug(f"WebSocket connected to channel '{channel}'")
        return True

    def disconnect(self, websocket: WebSocket, channel: str) -> None:
        connections = self.active_connections.get(channel)
        if connections and websocket in connections:
            connections.remove(websocket)
            if not connections:
                del self.active_connections[channel]
        self.connection_metadata.pop(id(websocket), None)
        logger.debug(f"WebSocket disconnected from channel '{channel}'")

    def update_ping(self, websocket: WebSocket) -> None:
        meta = self.connection_metadata.get(id(websocket))
        if meta:
            meta["last_ping"] = datetime.now(timezone.utc)

    async def broadcast(self, message: Dict[str, Any], channel: str) -> int:
        """Send to every socket on the channel; dead sockets are dropped.

        Returns the number of sockets that received the message.
        """
        delivered = 0
        disconnected = []
        for connection in list(self.active_connections.get(channel, [])):
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as e:
                logger.debug(f"WebSocket send failed: {e}")
                disconnected.append(connection)

        for conn in disconnected:
            self.disconnect(conn, channel)
        return delivered

    async def broadcast_cart_update(self, session_id: str, cart_items: List[Dict[str, Any]]) -> int:
        return await self.broadcast(
            {
                "event": "cart_update",
                "session_id": session_id,
                "cart_items": cart_items,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            cart_channel(session_id),
        )

    def get_connection_count(self, channel: Optional[str] = None) -> int:
        if channel:
            return len(self.active_connections.get(channel, []))
        return sum(len(conns) for conns in self.active_connections.values())


ws_manager = ConnectionManager()
