"""Level computation: level == floor(xp / 100) + 1."""

from __future__ import annotations

import pytest

from lq.ledger.levels import XP_PER_LEVEL, compute_level, level_info, level_table


class TestComputeLevel:
    @pytest.mark.parametrize(
        ("xp", "level"),
        [(0, 1), (1, 1), (99, 1), (100, 2), (105, 2), (199, 2), (200, 3), (9999, 100), (10_000, 101)],
    )
    def test_level_for_xp(self, xp: int, level: int) -> None:
        assert compute_level(xp) == level

    def test_negative_xp_is_level_one(self) -> None:
        assert compute_level(-50) == 1

    def test_matches_formula_for_range(self) -> None:
        for xp in range(0, 1000, 7):
            assert compute_level(xp) == xp // 100 + 1


class TestLevelInfo:
    def test_progress_within_level(self) -> None:
        info = level_info(105)
        assert info["level"] == 2
        assert info["xp_into_level"] == 5
        assert info["next_level_xp"] == 200
        assert info["xp_to_next_level"] == 95
        assert info["progress_percentage"] == 5.0

    def test_exact_boundary(self) -> None:
        info = level_info(300)
        assert info["level"] == 4
        assert info["xp_into_level"] == 0
        assert info["xp_to_next_level"] == XP_PER_LEVEL


class TestLevelTable:
    def test_cumulative_thresholds(self) -> None:
        table = level_table(5)
        assert [row["xp_required"] for row in table] == [0, 100, 200, 300, 400]
        assert table[0]["level"] == 1
        assert table[-1]["level"] == 5
