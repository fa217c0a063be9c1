"""Redis pub/sub channels for ledger events.

The WebSocket bridge (``lq.ws.bridge``) subscribes to these channels and fans
the payloads out to connected clients. Delivery is best-effort: there is no
acknowledgement or replay, and the periodic reconciliation sweep covers
anything a client missed.
"""

from __future__ import annotations

import json
import logging
from functools import partial
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from lq.database import after_commit

logger = logging.getLogger(__name__)

STREAK_UPDATE = "pubsub:streak_update"
XP_GAINED = "pubsub:xp_gained"
LEVEL_UP = "pubsub:level_up"
BADGE_EARNED = "pubsub:badge_earned"
PURCHASE = "pubsub:purchase"
LEADERBOARD_REFRESH = "pubsub:leaderboard_refresh"


async def publish(redis: Any | None, channel: str, payload: dict[str, Any]) -> bool:
    """Publish a JSON payload. Returns False when Redis is absent or the publish fails."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))
    except Exception:
        logger.warning("Failed to publish %s", channel, exc_info=True)
        return False
    return True


def publish_after_commit(db: AsyncSession, redis: Any | None, channel: str, payload: dict[str, Any]) -> None:
    """Queue a publish for when ``db`` commits, so subscribers never see uncommitted state."""
    if redis is None:
        return
    after_commit(db, partial(publish, redis, channel, payload))
