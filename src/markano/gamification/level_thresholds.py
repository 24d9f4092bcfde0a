"""Level thresholds and computation.

LEVEL_THRESHOLDS is the seed for the learning_levels table. compute_level
works on any ordered table, so the database copy stays authoritative.
"""

from __future__ import annotations

from collections.abc import Sequence

LEVEL_THRESHOLDS: list[dict] = [
    {"level_number": 1, "level_name": "Beginner", "xp_required": 0, "badge_icon": "🌱"},
    {"level_number": 2, "level_name": "Learner", "xp_required": 100, "badge_icon": "📘"},
    {"level_number": 3, "level_name": "Explorer", "xp_required": 250, "badge_icon": "🧭"},
    {"level_number": 4, "level_name": "Achiever", "xp_required": 500, "badge_icon": "🎯"},
    {"level_number": 5, "level_name": "Scholar", "xp_required": 1000, "badge_icon": "🎓"},
    {"level_number": 6, "level_name": "Expert", "xp_required": 2000, "badge_icon": "💡"},
    {"level_number": 7, "level_name": "Master", "xp_required": 3500, "badge_icon": "🏅"},
    {"level_number": 8, "level_name": "Grandmaster", "xp_required": 5000, "badge_icon": "🏆"},
    {"level_number": 9, "level_name": "Legend", "xp_required": 7500, "badge_icon": "⭐"},
    {"level_number": 10, "level_name": "Champion", "xp_required": 10000, "badge_icon": "👑"},
]


def validate_thresholds(levels: Sequence[dict]) -> None:
    """Raise ValueError unless xp_required strictly increases with level_number."""
    ordered = sorted(levels, key=lambda lv: lv["level_number"])
    for prev, cur in zip(ordered, ordered[1:]):
        if cur["xp_required"] <= prev["xp_required"]:
            msg = (
                f"xp_required must increase with level_number: level {cur['level_number']} "
                f"({cur['xp_required']} XP) <= level {prev['level_number']} ({prev['xp_required']} XP)"
            )
            raise ValueError(msg)


def compute_level(total_xp: int, levels: Sequence[dict] = LEVEL_THRESHOLDS) -> dict:
    """Compute level info from total XP.

    The current level is the highest level_number whose xp_required <= total_xp.
    xp_to_next_level is the xp_required of level_number + 1 minus total_xp,
    or 0 when that level is not defined. Below every threshold (or with an
    empty table) the learner sits at level 1.
    """
    by_number = {lv["level_number"]: lv for lv in levels}

    current: dict | None = None
    for lv in sorted(levels, key=lambda lv: lv["level_number"]):
        if lv["xp_required"] <= total_xp:
            current = lv

    level_number = current["level_number"] if current else 1
    next_level = by_number.get(level_number + 1)
    xp_to_next = next_level["xp_required"] - total_xp if next_level else 0

    return {
        "level": level_number,
        "title": current["level_name"] if current else None,
        "xp_to_next_level": max(xp_to_next, 0),
        "next_level": next_level["level_number"] if next_level else None,
    }
