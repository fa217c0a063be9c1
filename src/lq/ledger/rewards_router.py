"""Reward endpoints: teacher point awards, badges and XP milestone rewards."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.dependencies import get_current_user, require_teacher
from lq.auth.service import get_account_by_id
from lq.database import get_session
from lq.db.models import Account
from lq.ledger.badge_service import award_badge, get_account_badges, list_badge_definitions
from lq.ledger.reward_service import award_points, resolve_student
from lq.ledger.schemas import (
    AwardBadgeRequest,
    AwardPointsRequest,
    AwardPointsResponse,
    BadgeDefinitionResponse,
    UnlockRewardRequest,
)
from lq.ledger.store_service import MILESTONE_REWARDS, get_unlocked_rewards, unlock_milestone
from lq.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])


@router.post("/award", response_model=AwardPointsResponse)
async def award(
    body: AwardPointsRequest,
    teacher: Account = Depends(require_teacher),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> AwardPointsResponse:
    """Teacher award: ``points`` coins and ``points`` XP to one student."""
    student = await resolve_student(db, body.student_id, body.student_email)
    await award_points(db, redis, teacher, student, body.points, body.reason)
    await db.commit()
    return AwardPointsResponse(
        id=student.id,
        name=student.name,
        email=student.email,
        xp=student.xp,
        level=student.level,
        coins=student.coins,
    )


@router.get("/badges", response_model=list[BadgeDefinitionResponse])
async def badge_catalog(db: AsyncSession = Depends(get_session)) -> list[BadgeDefinitionResponse]:
    badges = await list_badge_definitions(db)
    return [
        BadgeDefinitionResponse(
            slug=b.slug, name=b.name, description=b.description, category=b.category, rarity=b.rarity,
        )
        for b in badges
    ]


@router.get("/badges/{user_id}")
async def account_badges(
    user_id: int,
    _user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    if await get_account_by_id(db, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"badges": await get_account_badges(db, user_id)}


@router.post("/badges/{user_id}")
async def grant_badge(
    user_id: int,
    body: AwardBadgeRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    """Award a badge. Re-awarding a held badge is a no-op reported as ``awarded: false``."""
    if user.role != "teacher" and user.id != user_id:
        raise HTTPException(status_code=403, detail="Only teachers can award badges to others")
    if await get_account_by_id(db, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    awarded = await award_badge(db, redis, user_id, body.badge_id, awarded_by=user.id)
    if awarded is None:
        raise HTTPException(status_code=404, detail=f"Unknown badge: {body.badge_id}")
    await db.commit()
    return {"awarded": awarded, "badges": await get_account_badges(db, user_id)}


@router.get("/milestones")
async def milestones(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    """XP milestone rewards with the caller's unlocked/eligible state."""
    owned = {r.reward_id for r in await get_unlocked_rewards(db, user.id)}
    return [
        {**reward, "unlocked": reward["id"] in owned, "eligible": user.xp >= reward["required_xp"]}
        for reward in MILESTONE_REWARDS
    ]


@router.post("/unlock")
async def unlock(
    body: UnlockRewardRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    """Unlock an XP milestone reward (XP is not spent)."""
    await unlock_milestone(db, redis, user.id, body.reward_id)
    await db.commit()
    rewards = await get_unlocked_rewards(db, user.id)
    return {"unlockedRewards": [r.reward_id for r in rewards], "xp": user.xp}
