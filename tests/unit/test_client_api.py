"""LearnQuestClient against a mocked transport."""

from __future__ import annotations

import json

import httpx
import pytest

from lq.client.api import LearnQuestClient


def _transport(calls: list[httpx.Request]) -> httpx.MockTransport:
    snapshot = {"id": 1, "email": "me@example.com", "xp": 40, "coins": 60}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/api/v1/users/me":
            return httpx.Response(200, json=snapshot)
        if request.url.path == "/api/v1/store/purchase":
            item = json.loads(request.content)["itemId"]
            return httpx.Response(200, json={"itemId": item, "coins": 10, "unlockedRewards": [item]})
        if request.url.path == "/api/v1/users/leaderboard":
            return httpx.Response(200, json=[{"id": 1, "email": "me@example.com", "xp": 40, "rank": 1}])
        return httpx.Response(404, json={"detail": "Not Found"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_me_reads_through_cache() -> None:
    calls: list[httpx.Request] = []
    async with LearnQuestClient("http://lq.test", token="abc", transport=_transport(calls)) as client:
        first = await client.me()
        second = await client.me()
    assert first == second
    assert len(calls) == 1
    assert calls[0].headers["Authorization"] == "Bearer abc"


@pytest.mark.asyncio
async def test_purchase_invalidates_cache() -> None:
    calls: list[httpx.Request] = []
    async with LearnQuestClient("http://lq.test", transport=_transport(calls)) as client:
        await client.me()
        await client.purchase("dark_theme")
        assert client.state.account.snapshot is None
        await client.me()
    assert [c.url.path for c in calls].count("/api/v1/users/me") == 2


@pytest.mark.asyncio
async def test_leaderboard_populates_view() -> None:
    async with LearnQuestClient("http://lq.test", transport=_transport([])) as client:
        await client.leaderboard(limit=10)
        assert client.state.leaderboard.row_for("me@example.com")["rank"] == 1


@pytest.mark.asyncio
async def test_errors_raise() -> None:
    async with LearnQuestClient("http://lq.test", transport=_transport([])) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.award_xp("x@example.com", 10)
