"""Experience and level progression.

Level n spans ``(n - 1) * 500`` to ``n * 500 - 1`` experience:

- Level 1: 0 - 499 XP
- Level 2: 500 - 999 XP
- Level 3: 1000 - 1499 XP
"""

from __future__ import annotations

from dataclasses import dataclass

XP_PER_LEVEL = 500


@dataclass(frozen=True)
class LevelInfo:
    level: int
    current_xp: int
    xp_for_current_level: int
    xp_for_next_level: int
    xp_into_level: int
    xp_needed_for_next_level: int
    progress_percent: float


def experience_for_level(level: int) -> int:
    """Total experience needed to reach ``level``."""
    if level <= 1:
        return 0
    return (level - 1) * XP_PER_LEVEL


def level_for_experience(xp: int) -> int:
    if xp < XP_PER_LEVEL:
        return 1
    return xp // XP_PER_LEVEL + 1


def level_info(xp: int) -> LevelInfo:
    level = level_for_experience(xp)
    floor_xp = experience_for_level(level)
    ceiling_xp = experience_for_level(level + 1)
    into = xp - floor_xp
    needed = ceiling_xp - floor_xp
    return LevelInfo(
        level=level,
        current_xp=xp,
        xp_for_current_level=floor_xp,
        xp_for_next_level=ceiling_xp,
        xp_into_level=into,
        xp_needed_for_next_level=needed,
        progress_percent=into / needed * 100,
    )


def experience_reward(enemy_level: int) -> int:
    """XP granted for defeating an enemy: level 1 -> 50, level 5 -> 90."""
    return (enemy_level + 4) * 10
