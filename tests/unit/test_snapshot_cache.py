"""Snapshot cache invalidation and event delivery relative to commit."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.service import register_account
from lq.database import get_session_factory, pending_after_commit
from lq.db.models import Account
from lq.ledger import events
from lq.ledger.snapshot import SNAPSHOT_CACHE_KEY, get_snapshot
from lq.ledger.xp_service import adjust_xp


async def _committed_student(email: str = "sam@example.com") -> int:
    async with get_session_factory()() as db:
        account = await register_account(db, email, "SecureP@ss1", "Sam")
        await db.commit()
        return account.id


async def _snapshot(redis, account_id: int) -> dict:
    async with get_session_factory()() as db:
        return await get_snapshot(db, redis, await db.get(Account, account_id))


@pytest.mark.asyncio
async def test_read_during_uncommitted_write_is_not_kept(database: None, fake_redis) -> None:
    account_id = await _committed_student()

    async with get_session_factory()() as writer:
        await adjust_xp(writer, fake_redis, account_id, 150, "award")
        stale = await _snapshot(fake_redis, account_id)
        assert stale["xp"] == 0
        assert fake_redis.messages(events.XP_GAINED) == []
        await writer.commit()

    fresh = await _snapshot(fake_redis, account_id)
    assert fresh["xp"] == 150
    assert fresh["level"] == 2
    assert fake_redis.messages(events.XP_GAINED)[0]["xp"] == 150


@pytest.mark.asyncio
async def test_cached_snapshot_survives_until_commit(db_session: AsyncSession, fake_redis) -> None:
    account_id = await _committed_student()
    await _snapshot(fake_redis, account_id)
    key = SNAPSHOT_CACHE_KEY.format(account_id=account_id)
    assert key in fake_redis.store

    await adjust_xp(db_session, fake_redis, account_id, 20, "award")
    assert key in fake_redis.store

    await db_session.commit()
    assert key not in fake_redis.store


@pytest.mark.asyncio
async def test_rollback_discards_queued_events(db_session: AsyncSession, fake_redis) -> None:
    account_id = await _committed_student()

    await adjust_xp(db_session, fake_redis, account_id, 120, "award")
    assert pending_after_commit(db_session) > 0

    await db_session.rollback()
    assert pending_after_commit(db_session) == 0

    await db_session.commit()
    assert fake_redis.published == []
