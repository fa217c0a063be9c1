"""Bridges Redis pub/sub to WebSocket clients.

Subscribes to the ledger event channels published by the services and fans
messages out to subscribed WebSocket clients. Per-account notifications
arrive on ``ws:user:{id}`` and go straight to that account's connections.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from lq.ledger import events
from lq.ws.manager import STREAK_CHANNEL, manager

logger = structlog.get_logger()

USER_CHANNEL_PATTERN = "ws:user:*"

# Redis pub/sub channel -> WebSocket channel
CHANNEL_MAP: dict[str, str] = {
    events.STREAK_UPDATE: STREAK_CHANNEL,
    events.XP_GAINED: "ledger",
    events.LEVEL_UP: "ledger",
    events.BADGE_EARNED: "ledger",
    events.PURCHASE: "ledger",
    events.LEADERBOARD_REFRESH: "leaderboard",
}


def decode_message(message: dict) -> tuple[str, dict] | None:
    """Return ``(redis_channel, payload)`` for a pub/sub message, or None if unreadable."""
    redis_channel = message.get("channel", "")
    if isinstance(redis_channel, bytes):
        redis_channel = redis_channel.decode()
    try:
        data = message.get("data", b"")
        if isinstance(data, bytes):
            data = data.decode()
        payload = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        logger.warning("pubsub_invalid_message", channel=redis_channel)
        return None
    if not isinstance(payload, dict):
        logger.warning("pubsub_invalid_message", channel=redis_channel)
        return None
    return redis_channel, payload


async def dispatch(message: dict) -> int:
    """Route one pub/sub message to WebSocket clients. Returns recipients."""
    decoded = decode_message(message)
    if decoded is None:
        return 0
    redis_channel, payload = decoded

    if message.get("type") == "pmessage" and redis_channel.startswith("ws:user:"):
        try:
            user_id = int(redis_channel.rsplit(":", 1)[-1])
        except ValueError:
            logger.warning("pubsub_invalid_user_id", channel=redis_channel)
            return 0
        return await manager.send_to_user_direct(user_id, {
            "type": payload.get("event", "notification"),
            "payload": payload.get("data", payload),
        })

    ws_channel = CHANNEL_MAP.get(redis_channel)
    if ws_channel is None:
        return 0
    return await manager.broadcast_to_channel(ws_channel, {"type": redis_channel.split(":")[-1], **payload})


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self.redis = redis_client
        self._running = False

    async def start(self) -> None:
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(*CHANNEL_MAP.keys())
        await pubsub.psubscribe(USER_CHANNEL_PATTERN)
        logger.info("pubsub_bridge_started", channels=list(CHANNEL_MAP), patterns=[USER_CHANNEL_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                sent = await dispatch(message)
                if sent:
                    logger.debug("pubsub_dispatched", channel=message.get("channel"), recipients=sent)
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe()
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        self._running = False
