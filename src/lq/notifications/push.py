"""Push formatted notifications over Redis pub/sub for per-account WebSocket delivery."""

from __future__ import annotations

import json
import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from lq.database import after_commit

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from lq.db.models import Notification

logger = logging.getLogger(__name__)


def notification_payload(notification: Notification) -> dict[str, Any]:
    """Wire shape shared by the REST list and the WebSocket push."""
    return {
        "id": str(notification.id),
        "type": notification.type,
        "subtype": notification.subtype,
        "title": notification.title,
        "description": notification.description,
        "timestamp": notification.created_at.isoformat() if notification.created_at else None,
        "read": notification.read,
        "actionUrl": notification.action_url,
        "metadata": notification.notification_metadata or {},
    }


async def push_notification_to_account(redis: Any | None, notification: Notification) -> None:
    """Publish the notification to ``ws:user:{account_id}``.

    The notification must already be flushed (have an ``id``). The bridge
    pattern-subscribes to ``ws:user:*`` and routes the message to every
    connection of that account.
    """
    if redis is None:
        return

    message = {"event": "notification", "data": notification_payload(notification)}
    try:
        await redis.publish(f"ws:user:{notification.account_id}", json.dumps(message))
    except Exception:
        logger.warning("Failed to push notification via ws:user:%s", notification.account_id, exc_info=True)


def push_after_commit(db: AsyncSession, redis: Any | None, notification: Notification) -> None:
    """Queue the push for when ``db`` commits, so the client can fetch what it was told about."""
    if redis is None:
        return
    after_commit(db, partial(push_notification_to_account, redis, notification))
