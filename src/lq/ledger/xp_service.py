"""Balance mutations: XP (with level recompute), coins and game points.

Each mutation locks the account row, applies the change, writes one
``ledger_entries`` row and queues the snapshot invalidation and pub/sub events
for when the session commits. XP changes carry
an optional idempotency key; replaying a key is a no-op.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import utcnow
from lq.db.models import Account, LedgerEntry
from lq.errors import InsufficientCoinsError, InsufficientGamePointsError, NotFoundError
from lq.ledger import events
from lq.ledger.levels import compute_level
from lq.ledger.snapshot import invalidate_after_commit
from lq.notifications.service import create_notification

logger = structlog.get_logger()


async def lock_account(db: AsyncSession, account_id: int) -> Account:
    """Re-read the account row under ``SELECT ... FOR UPDATE``."""
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFoundError("User not found")
    return account


async def is_duplicate(db: AsyncSession, idempotency_key: str | None) -> bool:
    if idempotency_key is None:
        return False
    existing = await db.execute(select(LedgerEntry.id).where(LedgerEntry.idempotency_key == idempotency_key))
    return existing.scalar_one_or_none() is not None


def _entry(
    account: Account,
    currency: str,
    amount: int,
    balance_after: int,
    source: str,
    source_id: str | None,
    reason: str | None,
    idempotency_key: str | None = None,
) -> LedgerEntry:
    return LedgerEntry(
        account_id=account.id,
        currency=currency,
        amount=amount,
        balance_after=balance_after,
        source=source,
        source_id=source_id,
        reason=reason,
        idempotency_key=idempotency_key,
        created_at=utcnow(),
    )


async def adjust_xp(
    db: AsyncSession,
    redis: Any | None,
    account_id: int,
    delta: int,
    source: str,
    reason: str | None = None,
    source_id: str | None = None,
    idempotency_key: str | None = None,
) -> bool:
    """Apply a signed XP delta. Returns True if applied, False if the key was already used.

    1. Clamp the new total at 0
    2. Recompute ``level = xp // 100 + 1``
    3. Record the applied amount in the ledger
    4. On level up, notify the account and publish ``pubsub:level_up``
    """
    if await is_duplicate(db, idempotency_key):
        return False

    account = await lock_account(db, account_id)
    old_xp = account.xp
    old_level = account.level

    account.xp = max(0, old_xp + delta)
    account.level = compute_level(account.xp)
    applied = account.xp - old_xp

    db.add(_entry(account, "xp", applied, account.xp, source, source_id, reason, idempotency_key))
    await db.flush()

    logger.info(
        "xp_adjusted",
        account_id=account.id,
        delta=delta,
        applied=applied,
        xp=account.xp,
        level=account.level,
        source=source,
    )

    invalidate_after_commit(db, redis, account.id)
    events.publish_after_commit(db, redis, events.XP_GAINED, {
        "account_id": account.id,
        "email": account.email,
        "amount": applied,
        "xp": account.xp,
        "level": account.level,
        "source": source,
    })

    if account.level > old_level:
        await _emit_level_up(db, redis, account, old_level)

    return True


async def _emit_level_up(db: AsyncSession, redis: Any | None, account: Account, old_level: int) -> None:
    await create_notification(
        db,
        account.id,
        "ledger",
        "level_up",
        "Level Up!",
        f"You reached level {account.level}",
        action_url="/profile",
        metadata={"old_level": old_level, "new_level": account.level},
        redis=redis,
    )
    events.publish_after_commit(db, redis, events.LEVEL_UP, {
        "account_id": account.id,
        "email": account.email,
        "old_level": old_level,
        "new_level": account.level,
    })


async def adjust_coins(
    db: AsyncSession,
    redis: Any | None,
    account_id: int,
    delta: int,
    source: str,
    reason: str | None = None,
    source_id: str | None = None,
) -> Account:
    """Apply a signed coin delta. A debit larger than the balance raises and writes nothing."""
    account = await lock_account(db, account_id)
    if account.coins + delta < 0:
        raise InsufficientCoinsError(f"Insufficient coins: have {account.coins}, need {-delta}")

    account.coins += delta
    db.add(_entry(account, "coins", delta, account.coins, source, source_id, reason))
    await db.flush()
    invalidate_after_commit(db, redis, account.id)
    logger.info("coins_adjusted", account_id=account.id, delta=delta, coins=account.coins, source=source)
    return account


async def adjust_game_points(
    db: AsyncSession,
    redis: Any | None,
    account_id: int,
    delta: int,
    source: str,
    reason: str | None = None,
    source_id: str | None = None,
) -> Account:
    """Apply a signed game-point delta; the balance never goes negative."""
    account = await lock_account(db, account_id)
    if account.game_points + delta < 0:
        raise InsufficientGamePointsError(
            f"Insufficient game points: have {account.game_points}, need {-delta}"
        )

    account.game_points += delta
    db.add(_entry(account, "game_points", delta, account.game_points, source, source_id, reason))
    await db.flush()
    invalidate_after_commit(db, redis, account.id)
    return account


async def get_ledger_history(
    db: AsyncSession,
    account_id: int,
    page: int = 1,
    per_page: int = 20,
    currency: str | None = None,
) -> tuple[list[LedgerEntry], int]:
    """One page of ledger entries, newest first, plus the total count."""
    conditions = [LedgerEntry.account_id == account_id]
    if currency is not None:
        conditions.append(LedgerEntry.currency == currency)

    total = (await db.execute(select(func.count()).select_from(LedgerEntry).where(*conditions))).scalar_one()
    result = await db.execute(
        select(LedgerEntry)
        .where(*conditions)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
