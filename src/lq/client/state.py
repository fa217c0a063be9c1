"""Client-side view state for the learner app.

The server snapshot is the single source of truth. ``AccountCache`` holds the
latest snapshot with its fetch time and is dropped (never patched field by
field) whenever a push concerns the account. Leaderboard rows are the one
exception: a ``streak:update`` push rewrites the streak of the matching row
in place so rankings stay live between reconciliation sweeps.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog

from lq.clock import utcnow

logger = structlog.get_logger()

LEDGER_EVENTS = {"xp_gained", "level_up", "badge_earned", "purchase"}


@dataclass
class AccountCache:
    """Read-through cache of one account snapshot."""

    max_age: timedelta = timedelta(seconds=30)
    snapshot: dict[str, Any] | None = None
    fetched_at: datetime | None = None

    def store(self, snapshot: dict[str, Any], now: datetime | None = None) -> None:
        self.snapshot = snapshot
        self.fetched_at = now or utcnow()

    def is_fresh(self, now: datetime | None = None) -> bool:
        if self.snapshot is None or self.fetched_at is None:
            return False
        return (now or utcnow()) - self.fetched_at < self.max_age

    def get(self, now: datetime | None = None) -> dict[str, Any] | None:
        """The snapshot if still fresh, else None (caller refetches)."""
        return self.snapshot if self.is_fresh(now) else None

    def invalidate(self) -> None:
        self.snapshot = None
        self.fetched_at = None

    @property
    def email(self) -> str | None:
        return self.snapshot.get("email") if self.snapshot else None

    @property
    def account_id(self) -> int | None:
        return self.snapshot.get("id") if self.snapshot else None


@dataclass
class LeaderboardView:
    rows: list[dict[str, Any]] = field(default_factory=list)
    refreshed_at: datetime | None = None

    def apply_streak_update(self, payload: dict[str, Any]) -> bool:
        """Rewrite the streak of the row whose email matches. Returns True if a row changed."""
        email = payload.get("email")
        if not email:
            return False
        for row in self.rows:
            if row.get("email") != email:
                continue
            before = (row.get("loginStreak"), row.get("streak"))
            if "loginStreak" in payload:
                row["loginStreak"] = payload["loginStreak"]
            if "streak" in payload:
                row["streak"] = payload["streak"]
            return (row.get("loginStreak"), row.get("streak")) != before
        return False

    def apply_refresh(self, rows: list[dict[str, Any]], now: datetime | None = None) -> None:
        """Replace all rows with the authoritative ranking."""
        self.rows = [dict(r) for r in rows]
        self.refreshed_at = now or utcnow()

    def row_for(self, email: str) -> dict[str, Any] | None:
        return next((r for r in self.rows if r.get("email") == email), None)


@dataclass
class AppState:
    """Explicit application state with one dispatcher per push channel."""

    account: AccountCache = field(default_factory=AccountCache)
    leaderboard: LeaderboardView = field(default_factory=LeaderboardView)
    notifications: list[dict[str, Any]] = field(default_factory=list)
    listeners: list[Callable[[str, dict[str, Any]], None]] = field(default_factory=list)

    def on_event(self, channel: str, data: dict[str, Any]) -> bool:
        """Apply one server push. Returns True if visible state changed."""
        handler = {
            "streak:update": self._on_streak_update,
            "ledger": self._on_ledger,
            "leaderboard": self._on_leaderboard,
            "notifications": self._on_notification,
        }.get(channel)
        if handler is None:
            logger.debug("client_event_ignored", channel=channel)
            return False

        changed = handler(data)
        if changed:
            for listener in self.listeners:
                listener(channel, data)
        return changed

    def _concerns_me(self, data: dict[str, Any]) -> bool:
        if self.account.snapshot is None:
            return False
        if data.get("email") and data["email"] == self.account.email:
            return True
        return data.get("account_id") is not None and data["account_id"] == self.account.account_id

    def _on_streak_update(self, data: dict[str, Any]) -> bool:
        changed = self.leaderboard.apply_streak_update(data)
        if self._concerns_me(data):
            self.account.invalidate()
            changed = True
        return changed

    def _on_ledger(self, data: dict[str, Any]) -> bool:
        if data.get("type") not in LEDGER_EVENTS or not self._concerns_me(data):
            return False
        self.account.invalidate()
        return True

    def _on_leaderboard(self, data: dict[str, Any]) -> bool:
        self.leaderboard.apply_refresh(data.get("rows", []))
        return True

    def _on_notification(self, data: dict[str, Any]) -> bool:
        payload = data.get("payload", data)
        self.notifications.insert(0, payload)
        self.account.invalidate()
        return True
