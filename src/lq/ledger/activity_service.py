"""Completed activities (lessons, quizzes, battles, challenges) and topic progress."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import utcnow
from lq.db.base import insert_for
from lq.db.models import Account, Activity, TopicProgress
from lq.errors import DomainError
from lq.ledger.badge_service import evaluate_auto_badges
from lq.ledger.snapshot import invalidate_after_commit
from lq.ledger.streak_service import record_qualifying_event
from lq.ledger.xp_service import adjust_game_points, adjust_xp

logger = structlog.get_logger()

ACTIVITY_SOURCES = frozenset({"lesson", "quiz", "battle", "challenge"})


async def set_topic_progress(
    db: AsyncSession,
    redis: Any | None,
    account_id: int,
    topic: str,
    percentage: int,
) -> TopicProgress:
    """Store the completion percentage for a topic as given (0-100)."""
    if not 0 <= percentage <= 100:
        raise DomainError("Progress must be between 0 and 100")

    result = await db.execute(
        select(TopicProgress).where(TopicProgress.account_id == account_id, TopicProgress.topic == topic)
    )
    progress = result.scalar_one_or_none()
    if progress is None:
        progress = TopicProgress(account_id=account_id, topic=topic)
        db.add(progress)
    progress.percentage = percentage
    progress.updated_at = utcnow()
    await db.flush()
    invalidate_after_commit(db, redis, account_id)
    return progress


async def record_activity(
    db: AsyncSession,
    redis: Any | None,
    account: Account,
    source: str,
    source_id: str,
    xp: int = 0,
    game_points: int = 0,
    topic: str | None = None,
    progress: int | None = None,
) -> dict[str, Any]:
    """Record a completed activity once and apply its rewards.

    A repeat of the same (source, source_id) returns ``recorded=False`` and
    changes nothing. Otherwise XP and game points are granted, topic progress
    is stored, the streak is extended and automatic badges are evaluated.
    """
    if source not in ACTIVITY_SOURCES:
        raise DomainError(f"Unknown activity source: {source}")
    if xp < 0 or game_points < 0:
        raise DomainError("Activity rewards cannot be negative")

    inserted = await db.execute(
        insert_for(db, Activity)
        .values(
            account_id=account.id,
            source=source,
            source_id=source_id,
            xp=xp,
            game_points=game_points,
            topic=topic,
            completed_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["account_id", "source", "source_id"])
    )
    if inserted.rowcount == 0:
        return {"recorded": False, "badgesAwarded": [], "streakChanged": False}

    key = f"{source}:{account.id}:{source_id}"
    if xp:
        await adjust_xp(db, redis, account.id, xp, source, source_id=source_id, idempotency_key=key)
    if game_points:
        await adjust_game_points(db, redis, account.id, game_points, source, source_id=source_id)
    if topic is not None and progress is not None:
        await set_topic_progress(db, redis, account.id, topic, progress)

    streak_changed = await record_qualifying_event(db, redis, account)
    badges = await evaluate_auto_badges(db, redis, account)
    logger.info("activity_recorded", account_id=account.id, source=source, source_id=source_id, xp=xp)
    return {"recorded": True, "badgesAwarded": badges, "streakChanged": streak_changed}
