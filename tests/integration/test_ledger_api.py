"""Ledger, rewards and store endpoints end to end."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_award_xp_crosses_level(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any],
                                      set_balances) -> None:
    await set_balances(student["id"], xp=95, level=1)
    response = await client.post(
        "/api/v1/users/award-xp",
        json={"email": "alice@example.com", "xpToAdd": 10},
        headers=teacher["headers"],
    )
    assert response.status_code == 200
    data = response.json()
    assert data["xp"] == 105
    assert data["level"] == 2

    notes = (await client.get("/api/v1/notifications", headers=student["headers"])).json()
    assert "level_up" in {n["subtype"] for n in notes["notifications"]}


@pytest.mark.asyncio
async def test_student_cannot_award_others(client: AsyncClient, student: dict[str, Any], register) -> None:
    other = await register("bob@example.com")
    response = await client.post(
        "/api/v1/users/award-xp",
        json={"email": other["email"], "xpToAdd": 10},
        headers=student["headers"],
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_teacher_cannot_award_teacher(client: AsyncClient, teacher: dict[str, Any], register) -> None:
    other = await register("ms.jones@example.com", role="teacher")
    response = await client.post(
        "/api/v1/users/award-xp",
        json={"email": other["email"], "xpToAdd": 10},
        headers=teacher["headers"],
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_award_unknown_email(client: AsyncClient, teacher: dict[str, Any]) -> None:
    response = await client.post(
        "/api/v1/users/award-xp",
        json={"email": "ghost@example.com", "xpToAdd": 10},
        headers=teacher["headers"],
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_negative_adjustment_clamps(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any],
                                          set_balances) -> None:
    await set_balances(student["id"], xp=40, level=1)
    response = await client.patch(
        f"/api/v1/users/{student['id']}/xp", json={"xpToAdd": -100}, headers=teacher["headers"]
    )
    assert response.json()["xp"] == 0

    deduct = await client.patch(f"/api/v1/users/{student['id']}/xp", json={"xpToAdd": -5},
                                headers=student["headers"])
    assert deduct.status_code == 403


@pytest.mark.asyncio
async def test_teacher_reward_scenario(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any],
                                       set_balances) -> None:
    await set_balances(student["id"], xp=80, coins=10, level=1)
    response = await client.post(
        "/api/v1/rewards/award",
        json={"studentEmail": "alice@example.com", "points": 20, "reason": "Great work"},
        headers=teacher["headers"],
    )
    assert response.status_code == 200
    assert response.json() == {
        "id": student["id"], "name": "Alice", "email": "alice@example.com", "xp": 100, "level": 2, "coins": 30,
    }


@pytest.mark.asyncio
async def test_reward_needs_target(client: AsyncClient, teacher: dict[str, Any]) -> None:
    response = await client.post("/api/v1/rewards/award", json={"points": 5}, headers=teacher["headers"])
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_activity_replay_is_noop(client: AsyncClient, student: dict[str, Any]) -> None:
    body = {"source": "lesson", "sourceId": "py-101", "xp": 25, "gamePoints": 10, "topic": "python", "progress": 40}
    first = (await client.post("/api/v1/users/me/activities", json=body, headers=student["headers"])).json()
    assert first["recorded"] is True
    assert "first_steps" in first["badgesAwarded"]
    assert first["user"]["progress"] == {"python": 40}

    second = (await client.post("/api/v1/users/me/activities", json=body, headers=student["headers"])).json()
    assert second["recorded"] is False
    assert second["user"]["xp"] == 25


@pytest.mark.asyncio
async def test_purchase_flow(client: AsyncClient, student: dict[str, Any], set_balances) -> None:
    await set_balances(student["id"], coins=40)
    short = await client.post("/api/v1/store/purchase", json={"itemId": "dark_theme"}, headers=student["headers"])
    assert short.status_code == 400
    assert short.json()["detail"].startswith("Insufficient coins")

    me = (await client.get("/api/v1/users/me", headers=student["headers"])).json()
    assert me["coins"] == 40
    assert me["unlockedRewards"] == []

    await set_balances(student["id"], coins=60)
    bought = await client.post("/api/v1/store/purchase", json={"itemId": "dark_theme"}, headers=student["headers"])
    assert bought.status_code == 200
    assert bought.json() == {"itemId": "dark_theme", "coins": 10, "unlockedRewards": ["dark_theme"]}

    again = await client.post("/api/v1/store/purchase", json={"itemId": "dark_theme"}, headers=student["headers"])
    assert again.status_code == 409

    theme = await client.patch("/api/v1/users/me/theme", json={"theme": "dark"}, headers=student["headers"])
    assert theme.json() == {"theme": "dark"}

    items = (await client.get("/api/v1/store/items", headers=student["headers"])).json()
    assert {i["id"]: i["owned"] for i in items}["dark_theme"] is True


@pytest.mark.asyncio
async def test_convert_game_points(client: AsyncClient, student: dict[str, Any], set_balances) -> None:
    await set_balances(student["id"], game_points=230)
    response = await client.post("/api/v1/store/convert", headers=student["headers"])
    assert response.json() == {"coinsEarned": 2, "gamePointsSpent": 200, "coins": 2, "gamePoints": 30}


@pytest.mark.asyncio
async def test_milestone_unlock(client: AsyncClient, student: dict[str, Any], set_balances) -> None:
    await set_balances(student["id"], xp=600, level=7)
    response = await client.post("/api/v1/rewards/unlock", json={"rewardId": "bronze_frame"},
                                 headers=student["headers"])
    assert response.json() == {"unlockedRewards": ["bronze_frame"], "xp": 600}

    listing = (await client.get("/api/v1/rewards/milestones", headers=student["headers"])).json()
    bronze = next(m for m in listing if m["id"] == "bronze_frame")
    assert bronze["unlocked"] is True


@pytest.mark.asyncio
async def test_badge_award_idempotent(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any]) -> None:
    url = f"/api/v1/rewards/badges/{student['id']}"
    first = (await client.post(url, json={"badgeId": "night_owl"}, headers=teacher["headers"])).json()
    second = (await client.post(url, json={"badgeId": "night_owl"}, headers=teacher["headers"])).json()
    assert first["awarded"] is True
    assert second["awarded"] is False
    assert [b["badgeId"] for b in second["badges"]] == ["night_owl"]


@pytest.mark.asyncio
async def test_unknown_badge(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any]) -> None:
    response = await client.post(f"/api/v1/rewards/badges/{student['id']}", json={"badgeId": "moon"},
                                 headers=teacher["headers"])
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_leaderboard_order_and_tie_break(client: AsyncClient, register, set_balances) -> None:
    a = await register("a@example.com")
    b = await register("b@example.com")
    c = await register("c@example.com")
    await register("teach@example.com", role="teacher")
    await set_balances(a["id"], xp=50)
    await set_balances(b["id"], xp=200)
    await set_balances(c["id"], xp=50)

    rows = (await client.get("/api/v1/users/leaderboard", headers=a["headers"])).json()
    assert [(r["email"], r["rank"]) for r in rows] == [
        ("b@example.com", 1),
        ("a@example.com", 2),
        ("c@example.com", 3),
    ]


@pytest.mark.asyncio
async def test_ledger_history(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any]) -> None:
    await client.post("/api/v1/rewards/award", json={"studentId": student["id"], "points": 5},
                      headers=teacher["headers"])
    history = (await client.get("/api/v1/users/me/ledger?currency=coins", headers=student["headers"])).json()
    assert history["total"] == 1
    assert history["entries"][0]["amount"] == 5


@pytest.mark.asyncio
async def test_public_profile(client: AsyncClient, student: dict[str, Any], teacher: dict[str, Any]) -> None:
    profile = (await client.get(f"/api/v1/users/{student['id']}/profile", headers=teacher["headers"])).json()
    assert profile["rank"] == 1
    assert "email" not in profile
