"""Shared test fixtures.

The suite runs against a throwaway SQLite file through aiosqlite. Redis is
off by default (no cache, no push); tests that look at pub/sub, caching or
rate limiting install ``FakeRedis`` with the ``fake_redis`` fixture.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

_TMP_DIR = tempfile.mkdtemp(prefix="lq_test_")
os.environ["LQ_DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["LQ_JWT_ALGORITHM"] = "HS256"
os.environ["LQ_JWT_SECRET"] = "test-only-secret-0123456789abcdef0123456789abcdef"
os.environ["LQ_LOG_FORMAT"] = "console"

from lq.auth.jwt import reset_keys  # noqa: E402
from lq.config import get_settings  # noqa: E402
from lq.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from lq.db.base import Base  # noqa: E402
from lq.db.models import Account  # noqa: E402
from lq.ledger.badge_service import seed_badges  # noqa: E402
from lq.main import create_app  # noqa: E402

PASSWORD = "SecureP@ss1"


class _FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple]] = []

    def incr(self, key: str) -> _FakePipeline:
        self._ops.append(("incr", (key,)))
        return self

    def expire(self, key: str, seconds: int) -> _FakePipeline:
        self._ops.append(("expire", (key, seconds)))
        return self

    async def execute(self) -> list[Any]:
        return [await getattr(self._redis, op)(*args) for op, args in self._ops]


class FakeRedis:
    """In-memory stand-in for the handful of Redis commands the app uses."""

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.published: list[tuple[str, dict]] = []

    async def get(self, key: str) -> Any:
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    async def incr(self, key: str) -> int:
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key: str, seconds: int) -> bool:
        return key in self.store

    async def ping(self) -> bool:
        return True

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, json.loads(message)))
        return 0

    def pipeline(self) -> _FakePipeline:
        return _FakePipeline(self)

    def messages(self, channel: str) -> list[dict]:
        return [payload for ch, payload in self.published if ch == channel]


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    """Install FakeRedis as the application's Redis client."""
    redis = FakeRedis()
    monkeypatch.setattr("lq.redis_client._pool", redis)
    return redis


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema and badge catalog for each test."""
    get_settings.cache_clear()
    reset_keys()
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_badges(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service tests and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app (lifespan not run: no bridge, no Redis)."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


RegisterFn = Callable[..., Awaitable[dict[str, Any]]]


@pytest.fixture
def register(client: AsyncClient) -> RegisterFn:
    """Register an account through the API; returns id, email, tokens and auth headers."""

    async def _register(email: str, role: str = "student", name: str | None = None) -> dict[str, Any]:
        response = await client.post("/api/v1/auth/register", json={
            "email": email,
            "password": PASSWORD,
            "name": name or email.split("@")[0].title(),
            "role": role,
        })
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "id": data["user"]["id"],
            "email": email,
            "access_token": data["access_token"],
            "refresh_token": data["refresh_token"],
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
        }

    return _register


@pytest_asyncio.fixture
async def student(register: RegisterFn) -> dict[str, Any]:
    return await register("alice@example.com")


@pytest_asyncio.fixture
async def teacher(register: RegisterFn) -> dict[str, Any]:
    return await register("mr.smith@example.com", role="teacher", name="Mr Smith")


@pytest.fixture
def set_balances(database: None) -> Callable[..., Awaitable[None]]:
    """Write account columns directly, e.g. ``await set_balances(id, xp=95, level=1)``."""

    async def _set(account_id: int, **values: Any) -> None:
        async with get_session_factory()() as session:
            await session.execute(update(Account).where(Account.id == account_id).values(**values))
            await session.commit()

    return _set
