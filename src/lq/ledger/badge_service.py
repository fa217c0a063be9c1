"""Badge catalog, idempotent awarding and automatic badge rules."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import utcnow
from lq.db.base import insert_for
from lq.db.models import (
    Account,
    AccountBadge,
    Activity,
    BadgeDefinition,
    TeamMember,
    TopicProgress,
)
from lq.ledger import events
from lq.ledger.snapshot import invalidate_after_commit
from lq.notifications.service import create_notification

logger = structlog.get_logger()

BADGE_SEED_DATA: list[dict] = [
    {"slug": "first_steps", "name": "First Steps", "category": "progress", "rarity": "common",
     "description": "Complete your first activity", "sort_order": 1},
    {"slug": "week_warrior", "name": "Week Warrior", "category": "streak", "rarity": "rare",
     "description": "Keep a 7-day streak", "sort_order": 2},
    {"slug": "code_master", "name": "Code Master", "category": "progress", "rarity": "epic",
     "description": "Complete 50 activities", "sort_order": 3},
    {"slug": "night_owl", "name": "Night Owl", "category": "special", "rarity": "common",
     "description": "Study late into the night", "sort_order": 4},
    {"slug": "speed_demon", "name": "Speed Demon", "category": "special", "rarity": "rare",
     "description": "Finish ten tasks in a single day", "sort_order": 5},
    {"slug": "perfectionist", "name": "Perfectionist", "category": "special", "rarity": "epic",
     "description": "Score 100% twenty times", "sort_order": 6},
    {"slug": "marathon_runner", "name": "Marathon Runner", "category": "streak", "rarity": "legendary",
     "description": "Keep a 30-day streak", "sort_order": 7},
    {"slug": "full_stack", "name": "Full Stack", "category": "progress", "rarity": "epic",
     "description": "Finish 10 topics", "sort_order": 8},
    {"slug": "quick_learner", "name": "Quick Learner", "category": "special", "rarity": "rare",
     "description": "Average under ten minutes per lesson", "sort_order": 9},
    {"slug": "consistency_king", "name": "Consistency King", "category": "streak", "rarity": "epic",
     "description": "Keep a 14-day streak", "sort_order": 10},
    {"slug": "problem_solver", "name": "Problem Solver", "category": "hackathon", "rarity": "rare",
     "description": "Get graded in a hard hackathon", "sort_order": 11},
    {"slug": "team_player", "name": "Team Player", "category": "hackathon", "rarity": "common",
     "description": "Join a hackathon team", "sort_order": 12},
]

STREAK_BADGES: list[tuple[int, str]] = [(7, "week_warrior"), (14, "consistency_king"), (30, "marathon_runner")]
FIRST_STEPS_XP = 10
CODE_MASTER_ACTIVITIES = 50
FULL_STACK_TOPICS = 10


async def seed_badges(db: AsyncSession) -> int:
    """Upsert the badge catalog. Returns number of badges seeded."""
    for badge_data in BADGE_SEED_DATA:
        stmt = insert_for(db, BadgeDefinition).values(**badge_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "rarity": stmt.excluded.rarity,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
    await db.commit()
    logger.info("badges_seeded", count=len(BADGE_SEED_DATA))
    return len(BADGE_SEED_DATA)


async def list_badge_definitions(db: AsyncSession) -> list[BadgeDefinition]:
    result = await db.execute(
        select(BadgeDefinition).where(BadgeDefinition.is_active.is_(True)).order_by(BadgeDefinition.sort_order)
    )
    return list(result.scalars().all())


async def get_badge_by_slug(db: AsyncSession, slug: str) -> BadgeDefinition | None:
    result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.slug == slug))
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, account_id: int, badge_id: int) -> bool:
    result = await db.execute(
        select(AccountBadge.id).where(AccountBadge.account_id == account_id, AccountBadge.badge_id == badge_id)
    )
    return result.scalar_one_or_none() is not None


async def get_account_badges(db: AsyncSession, account_id: int) -> list[dict[str, Any]]:
    """Badges held by an account, oldest first."""
    result = await db.execute(
        select(BadgeDefinition, AccountBadge.earned_at)
        .join(AccountBadge, AccountBadge.badge_id == BadgeDefinition.id)
        .where(AccountBadge.account_id == account_id)
        .order_by(AccountBadge.earned_at, AccountBadge.id)
    )
    return [
        {
            "badgeId": badge.slug,
            "name": badge.name,
            "description": badge.description,
            "rarity": badge.rarity,
            "earnedAt": earned_at,
        }
        for badge, earned_at in result
    ]


async def award_badge(
    db: AsyncSession,
    redis: Any | None,
    account_id: int,
    badge_slug: str,
    awarded_by: int | None = None,
) -> bool | None:
    """Add a badge to the account's set.

    Returns True if newly awarded, False if already held, None if the badge
    does not exist. The insert is ON CONFLICT DO NOTHING against the
    (account_id, badge_id) unique key, so concurrent awards of the same badge
    leave exactly one row.
    """
    badge = await get_badge_by_slug(db, badge_slug)
    if badge is None:
        return None

    stmt = (
        insert_for(db, AccountBadge)
        .values(account_id=account_id, badge_id=badge.id, earned_at=utcnow(), awarded_by=awarded_by)
        .on_conflict_do_nothing(index_elements=["account_id", "badge_id"])
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        return False

    logger.info("badge_awarded", account_id=account_id, badge=badge.slug, awarded_by=awarded_by)
    invalidate_after_commit(db, redis, account_id)
    await create_notification(
        db,
        account_id,
        "ledger",
        "badge_earned",
        f'Badge Earned: "{badge.name}"',
        badge.description,
        action_url="/rewards",
        metadata={"badge_id": badge.slug},
        redis=redis,
    )
    events.publish_after_commit(db, redis, events.BADGE_EARNED, {
        "account_id": account_id,
        "badge_id": badge.slug,
        "badge_name": badge.name,
        "rarity": badge.rarity,
    })
    return True


async def qualifying_badges(db: AsyncSession, account: Account) -> list[str]:
    """Slugs of the automatic badges the account currently qualifies for."""
    slugs: list[str] = []

    activity_count = (
        await db.execute(select(func.count()).select_from(Activity).where(Activity.account_id == account.id))
    ).scalar_one()
    if activity_count >= 1 or account.xp >= FIRST_STEPS_XP:
        slugs.append("first_steps")
    if activity_count >= CODE_MASTER_ACTIVITIES:
        slugs.append("code_master")

    for threshold, slug in STREAK_BADGES:
        if account.current_streak >= threshold:
            slugs.append(slug)

    finished_topics = (
        await db.execute(
            select(func.count())
            .select_from(TopicProgress)
            .where(TopicProgress.account_id == account.id, TopicProgress.percentage >= 100)
        )
    ).scalar_one()
    if finished_topics >= FULL_STACK_TOPICS:
        slugs.append("full_stack")

    in_team = (
        await db.execute(select(TeamMember.id).where(TeamMember.account_id == account.id).limit(1))
    ).scalar_one_or_none()
    if in_team is not None:
        slugs.append("team_player")

    return slugs


async def evaluate_auto_badges(db: AsyncSession, redis: Any | None, account: Account) -> list[str]:
    """Award every automatic badge the account qualifies for. Returns the newly awarded slugs."""
    if account.role != "student":
        return []
    awarded = []
    for slug in await qualifying_badges(db, account):
        if await award_badge(db, redis, account.id, slug):
            awarded.append(slug)
    return awarded
