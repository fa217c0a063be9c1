"""Leaderboard: students ranked by XP, computed at query time.

Ties on XP are broken by account id ascending, so the order is stable and
earlier accounts rank first. Ranks are 1-based and never stored.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.db.models import Account, AccountBadge, ClassMember


def rank_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort rows by (xp desc, id asc) and attach 1-based ranks. Pure function."""
    ordered = sorted(rows, key=lambda r: (-r["xp"], r["id"]))
    return [{**row, "rank": i} for i, row in enumerate(ordered, start=1)]


def _row(account: Account, badge_count: int) -> dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "photoUrl": account.photo_url,
        "xp": account.xp,
        "level": account.level,
        "coins": account.coins,
        "loginStreak": account.current_streak,
        "streak": {"currentStreak": account.current_streak, "longestStreak": account.longest_streak},
        "badges": badge_count,
    }


async def get_leaderboard(
    db: AsyncSession,
    class_id: int | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Ranked students, optionally scoped to one class's roster."""
    badge_counts = (
        select(AccountBadge.account_id, func.count(AccountBadge.id).label("badge_count"))
        .group_by(AccountBadge.account_id)
        .subquery()
    )
    stmt = (
        select(Account, func.coalesce(badge_counts.c.badge_count, 0))
        .outerjoin(badge_counts, badge_counts.c.account_id == Account.id)
        .where(Account.role == "student")
        .order_by(Account.xp.desc(), Account.id.asc())
    )
    if class_id is not None:
        stmt = stmt.join(ClassMember, ClassMember.student_id == Account.id).where(ClassMember.class_id == class_id)
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await db.execute(stmt)
    return rank_rows([_row(account, count) for account, count in result])


async def get_rank(db: AsyncSession, account: Account) -> int | None:
    """Rank of one student in the global leaderboard, or None for teachers."""
    if account.role != "student":
        return None
    ahead = await db.execute(
        select(func.count())
        .select_from(Account)
        .where(
            Account.role == "student",
            (Account.xp > account.xp) | ((Account.xp == account.xp) & (Account.id < account.id)),
        )
    )
    return ahead.scalar_one() + 1
