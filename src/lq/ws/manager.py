"""WebSocket connection manager.

Tracks active WebSocket connections and their channel subscriptions and fans
messages out to subscribed clients. Every connection starts subscribed to
``streak:update`` so leaderboards stay live without an explicit subscribe.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()

STREAK_CHANNEL = "streak:update"
NOTIFICATIONS_CHANNEL = "notifications"
VALID_CHANNELS = {STREAK_CHANNEL, "ledger", "leaderboard", NOTIFICATIONS_CHANNEL}
DEFAULT_CHANNELS = (STREAK_CHANNEL,)


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: int
    email: str
    subscriptions: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """Manages all active WebSocket connections.

    Safe for asyncio via the single-threaded event loop.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._channels: dict[str, set[str]] = defaultdict(set)  # channel -> {conn_ids}
        self._user_connections: dict[int, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def user_connection_count(self, user_id: int) -> int:
        return len(self._user_connections.get(user_id, ()))

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int, email: str) -> None:
        """Accept a new WebSocket connection and apply the default subscriptions."""
        await websocket.accept()
        client = ClientConnection(websocket=websocket, user_id=user_id, email=email)
        self._connections[conn_id] = client
        self._user_connections[user_id].add(conn_id)
        for channel in DEFAULT_CHANNELS:
            client.subscriptions.add(channel)
            self._channels[channel].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        """Remove a WebSocket connection and its subscriptions."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for channel in client.subscriptions:
            self._channels[channel].discard(conn_id)

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    async def subscribe(self, conn_id: str, channel: str) -> bool:
        """Subscribe a connection to a channel. Returns False if invalid."""
        client = self._connections.get(conn_id)
        if client is None or channel not in VALID_CHANNELS:
            return False

        client.subscriptions.add(channel)
        self._channels[channel].add(conn_id)
        logger.debug("ws_subscribed", conn_id=conn_id, channel=channel)
        return True

    async def unsubscribe(self, conn_id: str, channel: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None or channel not in VALID_CHANNELS:
            return False

        client.subscriptions.discard(channel)
        self._channels[channel].discard(conn_id)
        return True

    async def _send(self, conn_id: str, payload: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        try:
            await client.websocket.send_text(payload)
        except Exception:  # noqa: BLE001
            logger.debug("ws_send_failed", conn_id=conn_id)
            await self.disconnect(conn_id)
            return False
        client.messages_sent += 1
        return True

    async def broadcast_to_channel(self, channel: str, message: dict) -> int:
        """Send a message to all clients subscribed to a channel.

        Returns the number of clients that received the message. Clients whose
        socket fails are disconnected.
        """
        conn_ids = list(self._channels.get(channel, set()))
        if not conn_ids:
            return 0

        payload = json.dumps({"channel": channel, "data": message}, default=str)
        sent = 0
        for conn_id in conn_ids:
            if await self._send(conn_id, payload):
                sent += 1
        return sent

    async def send_to_user(self, user_id: int, channel: str, message: dict) -> int:
        """Send to the user's connections that are subscribed to ``channel``."""
        payload = json.dumps({"channel": channel, "data": message}, default=str)
        sent = 0
        for conn_id in list(self._user_connections.get(user_id, set())):
            client = self._connections.get(conn_id)
            if client and channel in client.subscriptions and await self._send(conn_id, payload):
                sent += 1
        return sent

    async def send_to_user_direct(self, user_id: int, message: dict) -> int:
        """Send on the notifications channel to every connection of the user, subscribed or not."""
        payload = json.dumps({"channel": NOTIFICATIONS_CHANNEL, "data": message}, default=str)
        sent = 0
        for conn_id in list(self._user_connections.get(user_id, set())):
            if await self._send(conn_id, payload):
                sent += 1
        return sent

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "channels": {ch: len(conns) for ch, conns in self._channels.items() if conns},
        }


# Global singleton
manager = ConnectionManager()
