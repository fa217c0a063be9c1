"""Account snapshot: the single server-side view of an account's ledger state.

Reads go through a Redis cache keyed per account with a short TTL. Every
ledger mutation deletes the key once its transaction commits, never patching
it, so a reader sees either a fresh snapshot or one that is at most
``snapshot_cache_ttl_seconds`` old and untouched since the last write.
"""

from __future__ import annotations

import json
import logging
from functools import partial
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import as_utc, utcnow
from lq.config import get_settings
from lq.database import after_commit
from lq.db.models import Account, AccountBadge, BadgeDefinition, TopicProgress, UnlockedReward
from lq.ledger.levels import level_info

logger = logging.getLogger(__name__)

SNAPSHOT_CACHE_KEY = "snapshot:account:{account_id}"


def _iso(value: Any) -> str | None:  # noqa: ANN401
    dt = as_utc(value)
    return dt.isoformat() if dt else None


def streak_dict(account: Account) -> dict[str, Any]:
    return {
        "currentStreak": account.current_streak,
        "longestStreak": account.longest_streak,
        "lastActivityAt": _iso(account.last_activity_at),
    }


async def build_snapshot(db: AsyncSession, account: Account) -> dict[str, Any]:
    """Serialise an account with its badges, rewards and topic progress."""
    badge_rows = await db.execute(
        select(BadgeDefinition.slug, BadgeDefinition.name, AccountBadge.earned_at)
        .join(BadgeDefinition, BadgeDefinition.id == AccountBadge.badge_id)
        .where(AccountBadge.account_id == account.id)
        .order_by(AccountBadge.earned_at, AccountBadge.id)
    )
    rewards = await db.execute(
        select(UnlockedReward.reward_id)
        .where(UnlockedReward.account_id == account.id)
        .order_by(UnlockedReward.unlocked_at, UnlockedReward.id)
    )
    progress = await db.execute(
        select(TopicProgress.topic, TopicProgress.percentage).where(TopicProgress.account_id == account.id)
    )
    info = level_info(account.xp)

    return {
        "id": account.id,
        "email": account.email,
        "name": account.name,
        "role": account.role,
        "photoUrl": account.photo_url,
        "theme": account.theme,
        "xp": account.xp,
        "level": account.level,
        "coins": account.coins,
        "gamePoints": account.game_points,
        "loginStreak": account.current_streak,
        "streak": streak_dict(account),
        "levelInfo": {
            "xpIntoLevel": info["xp_into_level"],
            "nextLevelXp": info["next_level_xp"],
            "xpToNextLevel": info["xp_to_next_level"],
            "progressPercentage": info["progress_percentage"],
        },
        "badges": [
            {"badgeId": slug, "name": name, "earnedAt": _iso(earned_at)}
            for slug, name, earned_at in badge_rows
        ],
        "unlockedRewards": [row[0] for row in rewards],
        "progress": {topic: pct for topic, pct in progress},
        "createdAt": _iso(account.created_at),
        "lastLogin": _iso(account.last_login),
    }


async def get_snapshot(db: AsyncSession, redis: Any | None, account: Account) -> dict[str, Any]:
    """Read-through: cached snapshot if present, otherwise build and cache it."""
    cache_key = SNAPSHOT_CACHE_KEY.format(account_id=account.id)

    if redis is not None:
        try:
            cached = await redis.get(cache_key)
        except Exception:
            logger.warning("Snapshot cache read failed for account %s", account.id, exc_info=True)
            cached = None
        if cached:
            return json.loads(cached)

    snapshot = await build_snapshot(db, account)
    snapshot["cachedAt"] = utcnow().isoformat()

    if redis is not None:
        try:
            await redis.setex(cache_key, get_settings().snapshot_cache_ttl_seconds, json.dumps(snapshot))
        except Exception:
            logger.warning("Snapshot cache write failed for account %s", account.id, exc_info=True)
    return snapshot


async def invalidate_snapshot(redis: Any | None, account_id: int) -> None:
    """Drop the cached snapshot after a ledger mutation."""
    if redis is None:
        return
    try:
        await redis.delete(SNAPSHOT_CACHE_KEY.format(account_id=account_id))
    except Exception:
        logger.warning("Snapshot cache invalidation failed for account %s", account_id, exc_info=True)


def invalidate_after_commit(db: AsyncSession, redis: Any | None, account_id: int) -> None:
    """Queue the invalidation for when ``db`` commits.

    Deleting the key earlier lets a concurrent reader rebuild the snapshot
    from the previous committed row and cache it for a full TTL.
    """
    if redis is None:
        return
    after_commit(db, partial(invalidate_snapshot, redis, account_id))
