"""Account ledger endpoints: snapshot, XP, activities, progress, leaderboard."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.dependencies import get_current_user
from lq.auth.service import get_account_by_email, get_account_by_id
from lq.classroom.service import can_view_class
from lq.config import get_settings
from lq.database import get_session
from lq.db.models import Account
from lq.ledger.activity_service import record_activity, set_topic_progress
from lq.ledger.badge_service import evaluate_auto_badges
from lq.ledger.leaderboard_service import get_leaderboard, get_rank
from lq.ledger.levels import level_info, level_table
from lq.ledger.schemas import (
    ActivityRequest,
    ActivityResponse,
    AdjustXPRequest,
    AwardXPRequest,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    LevelEntry,
    ProfileUpdateRequest,
    ProgressRequest,
    ThemeRequest,
)
from lq.ledger.snapshot import build_snapshot, get_snapshot, invalidate_after_commit
from lq.ledger.store_service import set_theme
from lq.ledger.xp_service import adjust_xp, get_ledger_history
from lq.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1", tags=["Ledger"])


@router.get("/users/me")
async def me(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    """Current account snapshot (read-through cached)."""
    snapshot = await get_snapshot(db, redis, user)
    snapshot["rank"] = await get_rank(db, user)
    return snapshot


@router.patch("/users/me")
async def update_profile(
    body: ProfileUpdateRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    if body.name is not None:
        user.name = body.name
    if body.photo_url is not None:
        user.photo_url = body.photo_url
    await db.flush()
    invalidate_after_commit(db, redis, user.id)
    snapshot = await build_snapshot(db, user)
    await db.commit()
    return snapshot


@router.patch("/users/me/theme")
async def update_theme(
    body: ThemeRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, str]:
    await set_theme(db, redis, user, body.theme)
    await db.commit()
    return {"theme": user.theme}


@router.put("/users/me/progress")
async def update_progress(
    body: ProgressRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    """Store completion percentage for one topic."""
    progress = await set_topic_progress(db, redis, user.id, body.topic, body.percentage)
    await evaluate_auto_badges(db, redis, user)
    await db.commit()
    return {"topic": progress.topic, "percentage": progress.percentage}


@router.post("/users/me/activities", response_model=ActivityResponse)
async def complete_activity(
    body: ActivityRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> ActivityResponse:
    """Record a completed lesson/quiz/battle/challenge. Replays are no-ops."""
    result = await record_activity(
        db,
        redis,
        user,
        source=body.source,
        source_id=body.source_id,
        xp=body.xp,
        game_points=body.game_points,
        topic=body.topic,
        progress=body.progress,
    )
    snapshot = await build_snapshot(db, user)
    await db.commit()
    return ActivityResponse(
        recorded=result["recorded"],
        badges_awarded=result["badgesAwarded"],
        streak_changed=result["streakChanged"],
        user=snapshot,
    )


@router.get("/users/me/ledger", response_model=LedgerHistoryResponse)
async def ledger_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    currency: str | None = Query(None, pattern="^(xp|coins|game_points)$"),
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LedgerHistoryResponse:
    entries, total = await get_ledger_history(db, user.id, page, per_page, currency)
    return LedgerHistoryResponse(
        entries=[
            LedgerEntryResponse(
                id=e.id,
                currency=e.currency,
                amount=e.amount,
                balance_after=e.balance_after,
                source=e.source,
                source_id=e.source_id,
                reason=e.reason,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/users/leaderboard")
async def leaderboard(
    class_id: int | None = Query(None),
    limit: int | None = Query(None, ge=1, le=1000),
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    """Students ranked by XP (ties: lower id first), optionally within one class."""
    if class_id is not None and not await can_view_class(db, user, class_id):
        raise HTTPException(status_code=403, detail="Not a member of this class")
    return await get_leaderboard(db, class_id=class_id, limit=limit or get_settings().leaderboard_default_limit)


@router.post("/users/award-xp")
async def award_xp(
    body: AwardXPRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    """Add XP by email. Teachers may award any student; students only themselves."""
    target = await get_account_by_email(db, body.email)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role != "teacher" and target.id != user.id:
        raise HTTPException(status_code=403, detail="Students can only award XP to themselves")
    if user.role == "teacher" and target.role != "student":
        raise HTTPException(status_code=400, detail="XP can only be awarded to students")

    await adjust_xp(db, redis, target.id, body.xp_to_add, "award", reason=body.reason, source_id=str(user.id))
    await evaluate_auto_badges(db, redis, target)
    snapshot = await build_snapshot(db, target)
    await db.commit()
    return snapshot


@router.patch("/users/{user_id}/xp")
async def patch_xp(
    user_id: int,
    body: AdjustXPRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, Any]:
    """Signed XP delta. Negative deltas are teacher-only adjustments."""
    if user.role != "teacher":
        if user_id != user.id:
            raise HTTPException(status_code=403, detail="Cannot change another user's XP")
        if body.xp_to_add < 0:
            raise HTTPException(status_code=403, detail="Only teachers can deduct XP")

    target = await get_account_by_id(db, user_id)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")

    source = "adjustment" if body.xp_to_add < 0 else "award"
    await adjust_xp(db, redis, target.id, body.xp_to_add, source, reason=body.reason, source_id=str(user.id))
    await evaluate_auto_badges(db, redis, target)
    snapshot = await build_snapshot(db, target)
    await db.commit()
    return snapshot


@router.get("/users/{user_id}/profile")
async def public_profile(
    user_id: int,
    _user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Public profile: ledger state without email-only fields."""
    target = await get_account_by_id(db, user_id)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")
    snapshot = await build_snapshot(db, target)
    info = level_info(target.xp)
    return {
        "id": target.id,
        "name": target.name,
        "role": target.role,
        "photoUrl": target.photo_url,
        "xp": target.xp,
        "level": target.level,
        "progressPercentage": info["progress_percentage"],
        "xpIntoLevel": info["xp_into_level"],
        "nextLevelXp": info["next_level_xp"],
        "loginStreak": target.current_streak,
        "streak": snapshot["streak"],
        "badges": snapshot["badges"],
        "rank": await get_rank(db, target),
    }


@router.get("/levels", response_model=list[LevelEntry])
async def levels(upto: int = Query(20, ge=1, le=500)) -> list[LevelEntry]:
    return [LevelEntry(**row) for row in level_table(upto)]
