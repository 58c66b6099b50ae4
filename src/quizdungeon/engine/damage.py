"""Linear damage model.

Damage dealt grows with ``rating - enemy_level``; damage taken grows with
``enemy_level - rating``. Both are floored at ``min_damage`` so a round
always has a cost.
"""

from __future__ import annotations

from typing import Optional

from quizdungeon.config.settings import DamageConfig


class DamageModel:
    def __init__(self, config: Optional[DamageConfig] = None):
        self.config = config or DamageConfig()

    def damage_dealt(self, rating: int, enemy_level: int) -> int:
        c = self.config
        return max(c.min_damage, c.base_dealt + c.dealt_per_point * (rating - enemy_level))

    def damage_taken(self, rating: int, enemy_level: int) -> int:
        c = self.config
        return max(c.min_damage, c.base_taken + c.taken_per_point * (enemy_level - rating))
