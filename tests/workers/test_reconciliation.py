"""Leaderboard reconciliation worker tests."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from lq.auth.service import register_account
from lq.database import get_engine
from lq.ledger import events
from lq.workers.reconciliation import WorkerSettings, reconcile_leaderboard, sweep_seconds


class TestSweepSchedule:
    def test_every_thirty_seconds(self) -> None:
        assert sweep_seconds(30) == {0, 30}

    def test_every_fifteen_seconds(self) -> None:
        assert sweep_seconds(15) == {0, 15, 30, 45}

    @pytest.mark.parametrize("interval", [0, -5, 60, 300])
    def test_out_of_range_runs_once_a_minute(self, interval: int) -> None:
        assert sweep_seconds(interval) == {0}

    def test_worker_registers_cron(self) -> None:
        assert reconcile_leaderboard in WorkerSettings.functions
        assert len(WorkerSettings.cron_jobs) == 1


class TestReconcile:
    @pytest.mark.asyncio
    async def test_publishes_ranked_rows(self, db_session: AsyncSession, fake_redis) -> None:
        low = await register_account(db_session, "low@example.com", "SecureP@ss1", "Low")
        high = await register_account(db_session, "high@example.com", "SecureP@ss1", "High")
        await register_account(db_session, "teach@example.com", "SecureP@ss1", "Teach", "teacher")
        low.xp, high.xp = 50, 250
        await db_session.commit()

        count = await reconcile_leaderboard({"redis": fake_redis})

        assert count == 2
        payload = fake_redis.messages(events.LEADERBOARD_REFRESH)[0]
        assert payload["count"] == 2
        assert [(r["email"], r["rank"]) for r in payload["rows"]] == [
            ("high@example.com", 1),
            ("low@example.com", 2),
        ]

    @pytest.mark.asyncio
    async def test_empty_leaderboard(self, db_session: AsyncSession, fake_redis) -> None:
        assert await reconcile_leaderboard({"redis": fake_redis}) == 0
        assert fake_redis.messages(events.LEADERBOARD_REFRESH) == [{"rows": [], "count": 0}]

    @pytest.mark.asyncio
    async def test_session_returned_to_pool(self, database: None, fake_redis) -> None:
        await reconcile_leaderboard({"redis": fake_redis})
        assert get_engine().pool.checkedout() == 0
