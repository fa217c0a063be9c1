"""arq worker for the leaderboard reconciliation sweep.

Pushes over WebSocket are best-effort, so clients can drift. Every
``reconciliation_interval_seconds`` the worker recomputes the ranking from
the database and publishes it on ``pubsub:leaderboard_refresh``; clients
replace their leaderboard rows wholesale.
"""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from lq.config import get_settings
from lq.database import close_db, get_session_factory, init_db
from lq.ledger import events
from lq.ledger.leaderboard_service import get_leaderboard

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    logger.info("Reconciliation worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Reconciliation worker shut down")


async def build_refresh_payload(db: Any, limit: int) -> dict[str, Any]:
    rows = await get_leaderboard(db, limit=limit)
    return {"rows": rows, "count": len(rows)}


async def reconcile_leaderboard(ctx: dict) -> int:  # type: ignore[type-arg]
    """Publish the authoritative top of the leaderboard. Returns rows published."""
    redis_client: aioredis.Redis = ctx["redis"]
    limit = get_settings().leaderboard_default_limit

    async with get_session_factory()() as db:
        payload = await build_refresh_payload(db, limit)

    if await events.publish(redis_client, events.LEADERBOARD_REFRESH, payload):
        logger.debug("Leaderboard refresh published: %d rows", payload["count"])
    return payload["count"]


def sweep_seconds(interval: int) -> set[int]:
    """Seconds-of-minute at which the cron fires for a given interval."""
    if interval <= 0 or interval >= 60:
        return {0}
    return set(range(0, 60, interval))


class WorkerSettings:
    """arq worker settings for the reconciliation sweep."""

    functions = [reconcile_leaderboard]
    cron_jobs = [
        cron(reconcile_leaderboard, second=sweep_seconds(get_settings().reconciliation_interval_seconds)),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 4
    job_timeout = 60
