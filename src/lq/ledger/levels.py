"""Level computation. Every 100 XP is one level; level 1 starts at 0 XP."""

from __future__ import annotations

XP_PER_LEVEL = 100


def compute_level(xp: int) -> int:
    """``floor(xp / 100) + 1``; negative input is treated as 0."""
    return max(0, xp) // XP_PER_LEVEL + 1


def level_info(xp: int) -> dict:
    """Level plus progress toward the next one, as shown on profile cards."""
    xp = max(0, xp)
    level = compute_level(xp)
    level_start = (level - 1) * XP_PER_LEVEL
    next_level_xp = level * XP_PER_LEVEL
    xp_into_level = xp - level_start
    return {
        "level": level,
        "xp": xp,
        "xp_into_level": xp_into_level,
        "xp_for_level": XP_PER_LEVEL,
        "next_level_xp": next_level_xp,
        "xp_to_next_level": next_level_xp - xp,
        "progress_percentage": round(xp_into_level / XP_PER_LEVEL * 100, 1),
    }


def level_table(upto: int = 20) -> list[dict]:
    """Cumulative XP required for levels 1..upto."""
    return [{"level": n, "xp_required": (n - 1) * XP_PER_LEVEL} for n in range(1, upto + 1)]
