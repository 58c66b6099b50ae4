"""Map rating and enemy level to a question level and answer time budget."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from quizdungeon.config.settings import CombatConfig


@dataclass(frozen=True)
class RoundBudget:
    question_level: int
    level_difference: int
    time_limit_seconds: int


def question_level(rating: Optional[int], default: int = 6) -> int:
    """High rating -> low (easy) question level."""
    if rating is None:
        return default
    return 11 - rating


def time_limit_seconds(
    rating: Optional[int],
    enemy_level: int,
    config: Optional[CombatConfig] = None,
) -> int:
    return scale(rating, enemy_level, config).time_limit_seconds


def scale(
    rating: Optional[int],
    enemy_level: int,
    config: Optional[CombatConfig] = None,
) -> RoundBudget:
    """Compute the per-round budget. Call once per question, not per session."""
    config = config or CombatConfig()
    level = question_level(rating, config.default_question_level)
    difference = enemy_level - level
    seconds = max(
        config.time_min_seconds,
        min(config.time_max_seconds, config.time_base_seconds - difference),
    )
    return RoundBudget(
        question_level=level,
        level_difference=difference,
        time_limit_seconds=seconds,
    )
