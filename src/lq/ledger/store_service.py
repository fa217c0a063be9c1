"""Coin store, XP milestone rewards and game-point conversion.

A purchase is all-or-nothing inside the request transaction:

1. reject if the item is already unlocked (nothing written)
2. ``UPDATE accounts SET coins = coins - cost WHERE id = :id AND coins >= cost``;
   zero rows updated means the balance is short (nothing written)
3. insert the unlocked reward with ON CONFLICT DO NOTHING; a conflict means a
   concurrent purchase won, so raise and let the debit roll back
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import utcnow
from lq.config import get_settings
from lq.db.base import insert_for
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
from lq.ledger.snapshot import invalidate_after_commit
from lq.ledger.xp_service import adjust_coins, adjust_game_points, lock_account

logger = structlog.get_logger()

STORE_ITEMS: list[dict[str, Any]] = [
    {"id": "dark_theme", "name": "Dark Theme", "cost": 50, "type": "theme", "category": "Themes",
     "description": "Easy on the eyes for late-night study sessions"},
    {"id": "ocean_theme", "name": "Ocean Theme", "cost": 75, "type": "theme", "category": "Themes",
     "description": "Calm blues for focused learning"},
    {"id": "ai_voice_pack", "name": "AI Voice Pack", "cost": 100, "type": "feature", "category": "Features",
     "description": "Spoken explanations from the AI tutor"},
    {"id": "custom_avatar", "name": "Custom Avatar", "cost": 30, "type": "avatar", "category": "Avatars",
     "description": "Upload your own profile picture"},
    {"id": "pro_dashboard", "name": "Pro Dashboard", "cost": 150, "type": "feature", "category": "Features",
     "description": "Detailed analytics of your progress"},
    {"id": "coding_mentor", "name": "Coding Mentor", "cost": 500, "type": "service", "category": "Services",
     "description": "A one-to-one session with a mentor"},
    {"id": "double_xp_boost", "name": "Double XP Boost", "cost": 200, "type": "boost", "category": "Boosts",
     "description": "Double XP for your next activities"},
    {"id": "certificate", "name": "Certificate", "cost": 300, "type": "certificate", "category": "Certificates",
     "description": "A certificate of completion"},
]
_STORE_BY_ID = {item["id"]: item for item in STORE_ITEMS}

MILESTONE_REWARDS: list[dict[str, Any]] = [
    {"id": "bronze_frame", "name": "Bronze Profile Frame", "required_xp": 500},
    {"id": "silver_frame", "name": "Silver Profile Frame", "required_xp": 1500},
    {"id": "gold_frame", "name": "Gold Profile Frame", "required_xp": 3000},
    {"id": "legend_title", "name": "Legend Title", "required_xp": 10000},
]
_MILESTONE_BY_ID = {reward["id"]: reward for reward in MILESTONE_REWARDS}

# Theme name -> store item that unlocks it. Themes not listed are free.
THEME_REWARDS = {"dark": "dark_theme", "ocean": "ocean_theme"}
FREE_THEMES = frozenset({"light", "system"})


def get_store_item(item_id: str) -> dict[str, Any] | None:
    return _STORE_BY_ID.get(item_id)


async def get_unlocked_rewards(db: AsyncSession, account_id: int) -> list[UnlockedReward]:
    result = await db.execute(
        select(UnlockedReward)
        .where(UnlockedReward.account_id == account_id)
        .order_by(UnlockedReward.unlocked_at, UnlockedReward.id)
    )
    return list(result.scalars().all())


async def owns_reward(db: AsyncSession, account_id: int, reward_id: str) -> bool:
    result = await db.execute(
        select(UnlockedReward.id).where(
            UnlockedReward.account_id == account_id,
            UnlockedReward.reward_id == reward_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _insert_reward(db: AsyncSession, account_id: int, reward_id: str, source: str, cost: int) -> bool:
    stmt = (
        insert_for(db, UnlockedReward)
        .values(account_id=account_id, reward_id=reward_id, source=source, cost=cost, unlocked_at=utcnow())
        .on_conflict_do_nothing(index_elements=["account_id", "reward_id"])
    )
    result = await db.execute(stmt)
    return result.rowcount > 0


async def purchase_item(db: AsyncSession, redis: Any | None, account_id: int, item_id: str) -> Account:
    """Buy a store item with coins. Raises without writing anything on rejection."""
    item = get_store_item(item_id)
    if item is None:
        raise NotFoundError(f"Unknown store item: {item_id}")

    if await owns_reward(db, account_id, item_id):
        raise AlreadyOwnedError(f"{item['name']} is already unlocked")

    cost = item["cost"]
    debit = await db.execute(
        update(Account)
        .where(Account.id == account_id, Account.coins >= cost)
        .values(coins=Account.coins - cost)
        .execution_options(synchronize_session=False)
    )
    if debit.rowcount == 0:
        account = await lock_account(db, account_id)
        raise InsufficientCoinsError(f"Insufficient coins: have {account.coins}, need {cost}")

    if not await _insert_reward(db, account_id, item_id, "store", cost):
        raise AlreadyOwnedError(f"{item['name']} is already unlocked")

    account = await lock_account(db, account_id)
    db.add(LedgerEntry(
        account_id=account_id,
        currency="coins",
        amount=-cost,
        balance_after=account.coins,
        source="store",
        source_id=item_id,
        reason=f"Purchased {item['name']}",
        created_at=utcnow(),
    ))
    await db.flush()

    logger.info("purchase_completed", account_id=account_id, item=item_id, cost=cost, coins=account.coins)
    invalidate_after_commit(db, redis, account_id)
    events.publish_after_commit(db, redis, events.PURCHASE, {
        "account_id": account_id,
        "email": account.email,
        "item_id": item_id,
        "cost": cost,
        "coins": account.coins,
    })
    return account


async def unlock_milestone(db: AsyncSession, redis: Any | None, account_id: int, reward_id: str) -> Account:
    """Unlock an XP milestone reward. XP is not spent."""
    reward = _MILESTONE_BY_ID.get(reward_id)
    if reward is None:
        raise NotFoundError(f"Unknown reward: {reward_id}")

    account = await lock_account(db, account_id)
    if account.xp < reward["required_xp"]:
        raise InsufficientXPError(f"Insufficient XP: have {account.xp}, need {reward['required_xp']}")
    if not await _insert_reward(db, account_id, reward_id, "milestone", 0):
        raise AlreadyOwnedError(f"{reward['name']} is already unlocked")

    logger.info("milestone_unlocked", account_id=account_id, reward=reward_id)
    invalidate_after_commit(db, redis, account_id)
    return account


async def convert_game_points(db: AsyncSession, redis: Any | None, account_id: int) -> dict[str, int]:
    """Convert whole multiples of ``game_points_per_coin`` into coins; the remainder stays."""
    rate = get_settings().game_points_per_coin
    account = await lock_account(db, account_id)
    coins = account.game_points // rate
    if coins <= 0:
        raise InsufficientGamePointsError(f"Need at least {rate} game points to convert")

    spent = coins * rate
    await adjust_game_points(db, redis, account_id, -spent, "conversion", reason=f"Converted to {coins} coins")
    account = await adjust_coins(db, redis, account_id, coins, "conversion", reason=f"Converted {spent} game points")
    return {"coinsEarned": coins, "gamePointsSpent": spent, "coins": account.coins, "gamePoints": account.game_points}


async def set_theme(db: AsyncSession, redis: Any | None, account: Account, theme: str) -> Account:
    """Switch theme. Paid themes require the matching store item."""
    reward_id = THEME_REWARDS.get(theme)
    if reward_id is None and theme not in FREE_THEMES:
        raise DomainError(f"Unknown theme: {theme}")
    if reward_id is not None and not await owns_reward(db, account.id, reward_id):
        raise DomainError(f"Theme '{theme}' must be unlocked in the store first")

    account.theme = theme
    await db.flush()
    invalidate_after_commit(db, redis, account.id)
    return account
