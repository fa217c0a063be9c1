"""Streak rules on UTC calendar days."""

from __future__ import annotations

from datetime import datetime, timezone

from lq.ledger.streak_service import next_streak

NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestNextStreak:
    def test_first_event_starts_at_one(self) -> None:
        assert next_streak(0, None, NOON) == 1

    def test_same_day_unchanged(self) -> None:
        earlier = datetime(2026, 3, 10, 0, 5, tzinfo=timezone.utc)
        assert next_streak(4, earlier, NOON) == 4

    def test_next_day_increments(self) -> None:
        yesterday = datetime(2026, 3, 9, 23, 59, tzinfo=timezone.utc)
        assert next_streak(4, yesterday, NOON) == 5

    def test_gap_resets_to_one(self) -> None:
        two_days_ago = datetime(2026, 3, 8, 12, 0, tzinfo=timezone.utc)
        assert next_streak(9, two_days_ago, NOON) == 1

    def test_naive_timestamps_are_utc(self) -> None:
        yesterday_naive = datetime(2026, 3, 9, 8, 0)
        assert next_streak(2, yesterday_naive, NOON) == 3

    def test_zero_streak_with_history_restarts(self) -> None:
        yesterday = datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc)
        assert next_streak(0, yesterday, NOON) == 1

    def test_clock_behind_last_event_keeps_streak(self) -> None:
        tomorrow = datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc)
        assert next_streak(3, tomorrow, NOON) == 3
