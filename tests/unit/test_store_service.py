"""Store purchases, milestone unlocks, conversion and themes."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.service import register_account
from lq.db.models import Account, LedgerEntry, UnlockedReward
from lq.errors import (
    AlreadyOwnedError,
    DomainError,
    InsufficientCoinsError,
    InsufficientGamePointsError,
    InsufficientXPError,
    NotFoundError,
)
from lq.ledger import events
from lq.ledger.store_service import (
    STORE_ITEMS,
    convert_game_points,
    get_store_item,
    purchase_item,
    set_theme,
    unlock_milestone,
)


async def _student(db: AsyncSession, **values: int) -> Account:
    account = await register_account(db, "buyer@example.com", "SecureP@ss1", "Buyer")
    for key, value in values.items():
        setattr(account, key, value)
    await db.flush()
    return account


async def _rewards(db: AsyncSession, account_id: int) -> list[str]:
    result = await db.execute(select(UnlockedReward.reward_id).where(UnlockedReward.account_id == account_id))
    return [row[0] for row in result]


class TestCatalog:
    def test_eight_items_with_unique_ids(self) -> None:
        assert len(STORE_ITEMS) == 8
        assert len({item["id"] for item in STORE_ITEMS}) == 8

    def test_dark_theme_costs_50(self) -> None:
        assert get_store_item("dark_theme")["cost"] == 50

    def test_unknown_item(self) -> None:
        assert get_store_item("rocket_boots") is None


class TestPurchase:
    @pytest.mark.asyncio
    async def test_insufficient_coins_changes_nothing(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, coins=40)
        with pytest.raises(InsufficientCoinsError):
            await purchase_item(db_session, None, account.id, "dark_theme")
        await db_session.refresh(account)
        assert account.coins == 40
        assert await _rewards(db_session, account.id) == []

    @pytest.mark.asyncio
    async def test_purchase_debits_exact_cost_once(self, db_session: AsyncSession, fake_redis) -> None:
        account = await _student(db_session, coins=120)
        account = await purchase_item(db_session, fake_redis, account.id, "ocean_theme")
        assert account.coins == 45
        assert await _rewards(db_session, account.id) == ["ocean_theme"]

        entry = (await db_session.execute(select(LedgerEntry))).scalars().one()
        assert entry.amount == -75
        assert entry.balance_after == 45
        assert fake_redis.messages(events.PURCHASE) == []
        await db_session.commit()
        assert fake_redis.messages(events.PURCHASE)[0]["item_id"] == "ocean_theme"

    @pytest.mark.asyncio
    async def test_already_owned(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, coins=500)
        await purchase_item(db_session, None, account.id, "custom_avatar")
        with pytest.raises(AlreadyOwnedError):
            await purchase_item(db_session, None, account.id, "custom_avatar")
        assert account.coins == 470
        assert await _rewards(db_session, account.id) == ["custom_avatar"]

    @pytest.mark.asyncio
    async def test_unknown_item(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, coins=500)
        with pytest.raises(NotFoundError):
            await purchase_item(db_session, None, account.id, "rocket_boots")


class TestMilestones:
    @pytest.mark.asyncio
    async def test_requires_xp_but_does_not_spend_it(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, xp=600, level=7)
        await unlock_milestone(db_session, None, account.id, "bronze_frame")
        assert account.xp == 600
        with pytest.raises(InsufficientXPError):
            await unlock_milestone(db_session, None, account.id, "silver_frame")
        with pytest.raises(AlreadyOwnedError):
            await unlock_milestone(db_session, None, account.id, "bronze_frame")


class TestConversion:
    @pytest.mark.asyncio
    async def test_whole_multiples_convert(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, game_points=250, coins=3)
        result = await convert_game_points(db_session, None, account.id)
        assert result == {"coinsEarned": 2, "gamePointsSpent": 200, "coins": 5, "gamePoints": 50}

    @pytest.mark.asyncio
    async def test_below_rate_rejected(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, game_points=99)
        with pytest.raises(InsufficientGamePointsError):
            await convert_game_points(db_session, None, account.id)


class TestTheme:
    @pytest.mark.asyncio
    async def test_free_theme(self, db_session: AsyncSession) -> None:
        account = await _student(db_session)
        await set_theme(db_session, None, account, "system")
        assert account.theme == "system"

    @pytest.mark.asyncio
    async def test_paid_theme_needs_purchase(self, db_session: AsyncSession) -> None:
        account = await _student(db_session, coins=50)
        with pytest.raises(DomainError):
            await set_theme(db_session, None, account, "dark")
        await purchase_item(db_session, None, account.id, "dark_theme")
        await set_theme(db_session, None, account, "dark")
        assert account.theme == "dark"
