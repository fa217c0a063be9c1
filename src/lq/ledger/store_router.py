"""Coin store endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.dependencies import get_current_user
from lq.database import get_session
from lq.db.models import Account
from lq.ledger.schemas import PurchaseRequest, PurchaseResponse, StoreItem
from lq.ledger.store_service import STORE_ITEMS, convert_game_points, get_unlocked_rewards, purchase_item
from lq.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1/store", tags=["Store"])


@router.get("/items", response_model=list[StoreItem])
async def items(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[StoreItem]:
    owned = {r.reward_id for r in await get_unlocked_rewards(db, user.id)}
    return [StoreItem(**item, owned=item["id"] in owned) for item in STORE_ITEMS]


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase(
    body: PurchaseRequest,
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> PurchaseResponse:
    """Spend coins on an item. 400 on insufficient coins, 409 if already owned."""
    account = await purchase_item(db, redis, user.id, body.item_id)
    await db.commit()
    rewards = await get_unlocked_rewards(db, user.id)
    return PurchaseResponse(
        item_id=body.item_id,
        coins=account.coins,
        unlocked_rewards=[r.reward_id for r in rewards],
    )


@router.get("/unlocked")
async def unlocked(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    rewards = await get_unlocked_rewards(db, user.id)
    return {
        "unlockedRewards": [
            {"rewardId": r.reward_id, "source": r.source, "cost": r.cost, "unlockedAt": r.unlocked_at}
            for r in rewards
        ],
        "coins": user.coins,
    }


@router.post("/convert")
async def convert(
    user: Account = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict[str, int]:
    """Convert game points to coins at the configured rate."""
    result = await convert_game_points(db, redis, user.id)
    await db.commit()
    return result
