"""Teacher point awards: one award moves both coins and XP by the same amount."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.db.models import Account
from lq.errors import DomainError, NotFoundError
from lq.ledger.badge_service import evaluate_auto_badges
from lq.ledger.xp_service import adjust_coins, adjust_xp
from lq.notifications.service import create_notification

logger = structlog.get_logger()


async def resolve_student(
    db: AsyncSession,
    student_id: int | None = None,
    student_email: str | None = None,
) -> Account:
    """Find a student by id or email. Both identify the same single account record."""
    if student_id is not None:
        stmt = select(Account).where(Account.id == student_id)
    elif student_email:
        stmt = select(Account).where(func.lower(Account.email) == student_email.lower())
    else:
        raise DomainError("studentId or studentEmail is required")

    student = (await db.execute(stmt)).scalar_one_or_none()
    if student is None:
        raise NotFoundError("Student not found")
    if student.role != "student":
        raise DomainError("Target account is not a student")
    return student


async def award_points(
    db: AsyncSession,
    redis: Any | None,
    teacher: Account,
    student: Account,
    points: int,
    reason: str | None = None,
) -> Account:
    """Add ``points`` coins and ``points`` XP to a student and notify them."""
    if points <= 0:
        raise DomainError("Points must be greater than 0")

    reason = reason or "Teacher award"
    await adjust_coins(db, redis, student.id, points, "teacher_award", reason=reason, source_id=str(teacher.id))
    await adjust_xp(db, redis, student.id, points, "teacher_award", reason=reason, source_id=str(teacher.id))
    await create_notification(
        db,
        student.id,
        "ledger",
        "points_awarded",
        f"You received {points} points!",
        f"{teacher.name}: {reason}",
        action_url="/rewards",
        metadata={"points": points, "teacher_id": teacher.id},
        redis=redis,
    )
    await evaluate_auto_badges(db, redis, student)
    logger.info("points_awarded", teacher_id=teacher.id, student_id=student.id, points=points)
    return student
