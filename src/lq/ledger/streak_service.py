"""Daily streak tracking.

A login or a completed activity is a qualifying event. Streaks are counted in
UTC calendar days: a second event on the same day changes nothing, an event
on the following day extends the streak, and any longer gap restarts it at 1.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from lq.clock import as_utc, utcnow
from lq.db.models import Account
from lq.ledger import events
from lq.ledger.snapshot import invalidate_after_commit, streak_dict

logger = structlog.get_logger()


def next_streak(current: int, last_activity_at: datetime | None, now: datetime) -> int:
    """Streak value after a qualifying event at ``now``."""
    last = as_utc(last_activity_at)
    if last is None or current <= 0:
        return 1
    gap_days = (as_utc(now).date() - last.date()).days
    if gap_days <= 0:
        return current
    if gap_days == 1:
        return current + 1
    return 1


def streak_update_payload(account: Account) -> dict[str, Any]:
    """Payload of the ``streak:update`` push event."""
    return {
        "email": account.email,
        "loginStreak": account.current_streak,
        "streak": streak_dict(account),
    }


async def record_qualifying_event(
    db: AsyncSession,
    redis: Any | None,
    account: Account,
    now: datetime | None = None,
    broadcast: bool = False,
) -> bool:
    """Update the account's streak counters. Returns True if the streak value changed.

    ``broadcast`` forces the ``streak:update`` push even when the value is
    unchanged; logins always broadcast so every open view refreshes.
    """
    now = now or utcnow()
    old = account.current_streak
    account.current_streak = next_streak(old, account.last_activity_at, now)
    account.longest_streak = max(account.longest_streak, account.current_streak)
    account.last_activity_at = now
    await db.flush()

    changed = account.current_streak != old
    if changed:
        logger.info("streak_updated", account_id=account.id, old=old, new=account.current_streak)

    invalidate_after_commit(db, redis, account.id)
    if changed or broadcast:
        events.publish_after_commit(db, redis, events.STREAK_UPDATE, streak_update_payload(account))
    return changed
