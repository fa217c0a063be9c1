"""Middleware tests: request ID, rate limiting, CORS, error bodies."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lq.config import get_settings
from lq.main import create_app


@pytest_asyncio.fixture
async def limited_client(
    database: None, fake_redis, monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[AsyncClient, None]:
    """App with a five-request window backed by FakeRedis."""
    monkeypatch.setenv("LQ_RATE_LIMIT_REQUESTS", "5")
    get_settings.cache_clear()
    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    get_settings.cache_clear()


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_rate_limit_headers(limited_client: AsyncClient) -> None:
    response = await limited_client.get("/api/v1/levels")
    assert response.headers["x-ratelimit-limit"] == "5"
    assert response.headers["x-ratelimit-remaining"] == "4"


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(limited_client: AsyncClient) -> None:
    """Sixth request in the window returns 429 with Retry-After."""
    for _ in range(5):
        assert (await limited_client.get("/api/v1/levels")).status_code == 200
    response = await limited_client.get("/api/v1/levels")
    assert response.status_code == 429
    assert "retry-after" in response.headers
    assert response.json() == {"detail": "Rate limit exceeded. Try again later."}


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(limited_client: AsyncClient) -> None:
    for _ in range(20):
        assert (await limited_client.get("/health")).status_code == 200


@pytest.mark.asyncio
async def test_no_limit_without_redis(client: AsyncClient) -> None:
    response = await client.get("/api/v1/levels")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/health",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found"}


@pytest.mark.asyncio
async def test_401_returns_detail(client: AsyncClient) -> None:
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 401
    assert "detail" in response.json()


@pytest.mark.asyncio
async def test_validation_error_shape(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/register", json={"email": "not-an-email"})
    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Validation error"
    assert data["errors"]
