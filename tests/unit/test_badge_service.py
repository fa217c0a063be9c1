"""Badge awarding, automatic badge rules and streak-driven badges."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.service import register_account
from lq.db.models import Account, AccountBadge, BadgeDefinition
from lq.ledger import events
from lq.ledger.activity_service import record_activity
from lq.ledger.badge_service import (
    BADGE_SEED_DATA,
    award_badge,
    evaluate_auto_badges,
    get_account_badges,
    seed_badges,
)
from lq.ledger.streak_service import record_qualifying_event


async def _account(db: AsyncSession, email: str = "badger@example.com", role: str = "student") -> Account:
    account = await register_account(db, email, "SecureP@ss1", "Badger", role)
    await db.flush()
    return account


async def _badge_rows(db: AsyncSession, account_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(AccountBadge).where(AccountBadge.account_id == account_id)
    )
    return result.scalar_one()


class TestSeed:
    @pytest.mark.asyncio
    async def test_reseed_keeps_one_row_per_badge(self, db_session: AsyncSession) -> None:
        # The database fixture already seeded once.
        await seed_badges(db_session)
        count = (await db_session.execute(select(func.count()).select_from(BadgeDefinition))).scalar_one()
        assert count == len(BADGE_SEED_DATA)

    def test_catalog_slugs_unique(self) -> None:
        slugs = [b["slug"] for b in BADGE_SEED_DATA]
        assert len(slugs) == len(set(slugs))


class TestAwardBadge:
    @pytest.mark.asyncio
    async def test_second_award_is_a_no_op(self, db_session: AsyncSession, fake_redis) -> None:
        account = await _account(db_session)
        assert await award_badge(db_session, fake_redis, account.id, "night_owl") is True
        assert await award_badge(db_session, fake_redis, account.id, "night_owl") is False
        assert await _badge_rows(db_session, account.id) == 1
        await db_session.commit()
        assert len(fake_redis.messages(events.BADGE_EARNED)) == 1

    @pytest.mark.asyncio
    async def test_unknown_badge(self, db_session: AsyncSession) -> None:
        account = await _account(db_session)
        assert await award_badge(db_session, None, account.id, "moon_walker") is None

    @pytest.mark.asyncio
    async def test_account_badges_listing(self, db_session: AsyncSession) -> None:
        account = await _account(db_session)
        await award_badge(db_session, None, account.id, "speed_demon")
        badges = await get_account_badges(db_session, account.id)
        assert [b["badgeId"] for b in badges] == ["speed_demon"]
        assert badges[0]["rarity"] == "rare"


class TestAutoBadges:
    @pytest.mark.asyncio
    async def test_seven_day_streak_earns_week_warrior(self, db_session: AsyncSession) -> None:
        account = await _account(db_session)
        start = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        for day in range(7):
            await record_qualifying_event(db_session, None, account, now=start + timedelta(days=day))
        assert account.current_streak == 7

        awarded = await evaluate_auto_badges(db_session, None, account)
        assert "week_warrior" in awarded
        assert "consistency_king" not in awarded
        assert await evaluate_auto_badges(db_session, None, account) == []

    @pytest.mark.asyncio
    async def test_first_activity_earns_first_steps(self, db_session: AsyncSession) -> None:
        account = await _account(db_session)
        result = await record_activity(db_session, None, account, "lesson", "intro-1", xp=5)
        assert result["recorded"] is True
        assert "first_steps" in result["badgesAwarded"]

    @pytest.mark.asyncio
    async def test_teachers_get_no_auto_badges(self, db_session: AsyncSession) -> None:
        teacher = await _account(db_session, "t@example.com", role="teacher")
        teacher.xp = 500
        teacher.current_streak = 30
        assert await evaluate_auto_badges(db_session, None, teacher) == []


class TestRecordActivity:
    @pytest.mark.asyncio
    async def test_repeat_activity_changes_nothing(self, db_session: AsyncSession) -> None:
        account = await _account(db_session)
        await record_activity(db_session, None, account, "quiz", "q-7", xp=30, game_points=40)
        again = await record_activity(db_session, None, account, "quiz", "q-7", xp=30, game_points=40)
        assert again == {"recorded": False, "badgesAwarded": [], "streakChanged": False}
        assert account.xp == 30
        assert account.game_points == 40
