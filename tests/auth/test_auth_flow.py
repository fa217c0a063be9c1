"""Register, login, refresh rotation and logout through the API."""

from typing import Any

import pytest
from httpx import AsyncClient

PASSWORD = "SecureP@ss1"


@pytest.mark.asyncio
async def test_register_returns_tokens(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/register", json={
        "email": "New.Person@Example.com",
        "password": PASSWORD,
        "name": "New Person",
    })
    assert response.status_code == 201
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "new.person@example.com"
    assert data["user"]["role"] == "student"


@pytest.mark.asyncio
async def test_duplicate_email_rejected(client: AsyncClient, student: dict[str, Any]) -> None:
    response = await client.post("/api/v1/auth/register", json={
        "email": "ALICE@example.com",
        "password": PASSWORD,
        "name": "Alice Again",
    })
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_weak_password_rejected(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/register", json={
        "email": "weak@example.com",
        "password": "password",
        "name": "Weak",
    })
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_login_starts_streak(client: AsyncClient, student: dict[str, Any], fake_redis) -> None:
    response = await client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["login_count"] == 1

    me = (await client.get("/api/v1/users/me", headers=student["headers"])).json()
    assert me["streak"]["currentStreak"] == 1
    assert fake_redis.messages("pubsub:streak_update")[-1]["email"] == "alice@example.com"


@pytest.mark.asyncio
async def test_wrong_password(client: AsyncClient, student: dict[str, Any]) -> None:
    response = await client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "Wrong1pass"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid email or password"}


@pytest.mark.asyncio
async def test_lockout_after_repeated_failures(
    client: AsyncClient, student: dict[str, Any], fake_redis, monkeypatch: pytest.MonkeyPatch
) -> None:
    from lq.config import get_settings

    monkeypatch.setattr(get_settings(), "account_lockout_threshold", 3)
    for _ in range(3):
        await client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "Wrong1pass"})
    response = await client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_refresh_rotates(client: AsyncClient, student: dict[str, Any]) -> None:
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": student["refresh_token"]})
    assert response.status_code == 200
    rotated = response.json()
    assert rotated["refresh_token"] != student["refresh_token"]

    again = await client.post("/api/v1/auth/refresh", json={"refresh_token": rotated["refresh_token"]})
    assert again.status_code == 200


@pytest.mark.asyncio
async def test_refresh_reuse_revokes_family(client: AsyncClient, student: dict[str, Any]) -> None:
    first = await client.post("/api/v1/auth/refresh", json={"refresh_token": student["refresh_token"]})
    newer = first.json()["refresh_token"]

    reuse = await client.post("/api/v1/auth/refresh", json={"refresh_token": student["refresh_token"]})
    assert reuse.status_code == 401

    # The stolen-token response also kills the legitimate successor.
    after = await client.post("/api/v1/auth/refresh", json={"refresh_token": newer})
    assert after.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_refresh(client: AsyncClient, student: dict[str, Any]) -> None:
    response = await client.post("/api/v1/auth/logout", json={"refresh_token": student["refresh_token"]})
    assert response.json() == {"detail": "Logged out"}
    after = await client.post("/api/v1/auth/refresh", json={"refresh_token": student["refresh_token"]})
    assert after.status_code == 401


@pytest.mark.asyncio
async def test_access_token_required(client: AsyncClient) -> None:
    response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_role_guard(client: AsyncClient, register: Any) -> None:
    kid = await register("kid@example.com")
    response = await client.post("/api/v1/classes", json={"name": "Physics"}, headers=kid["headers"])
    assert response.status_code == 403
