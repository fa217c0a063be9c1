"""Async HTTP client for the LearnQuest API."""

from __future__ import annotations

from typing import Any

import httpx

from lq.client.state import AppState


class LearnQuestClient:
    """Thin ``httpx.AsyncClient`` wrapper with bearer auth.

    ``me()`` reads through the ``AppState`` account cache; every mutating call
    invalidates it so the next read comes from the server.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        state: AppState | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout)
        self.state = state or AppState()

    async def __aenter__(self) -> LearnQuestClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def set_token(self, token: str) -> None:
        self._http.headers["Authorization"] = f"Bearer {token}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._http.request(method, path, **kwargs)
        response.raise_for_status()
        if response.status_code == 204:
            return None
        return response.json()

    async def me(self, refresh: bool = False) -> dict[str, Any]:
        cached = None if refresh else self.state.account.get()
        if cached is not None:
            return cached
        snapshot = await self._request("GET", "/api/v1/users/me")
        self.state.account.store(snapshot)
        return snapshot

    async def leaderboard(self, class_id: int | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        params = {k: v for k, v in {"class_id": class_id, "limit": limit}.items() if v is not None}
        rows = await self._request("GET", "/api/v1/users/leaderboard", params=params)
        self.state.leaderboard.apply_refresh(rows)
        return rows

    async def award_xp(self, email: str, xp_to_add: int, reason: str | None = None) -> dict[str, Any]:
        body = {"email": email, "xpToAdd": xp_to_add, "reason": reason}
        snapshot = await self._request("POST", "/api/v1/users/award-xp", json=body)
        self.state.account.invalidate()
        return snapshot

    async def purchase(self, item_id: str) -> dict[str, Any]:
        result = await self._request("POST", "/api/v1/store/purchase", json={"itemId": item_id})
        self.state.account.invalidate()
        return result
