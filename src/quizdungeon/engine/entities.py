"""Player and enemy models the combat engine reads and mutates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @property
    def angle(self) -> float:
        """Facing angle in radians (screen coordinates, y grows downwards)."""
        return _DIRECTION_ANGLES[self]


_DIRECTION_ANGLES = {
    Direction.UP: -math.pi / 2,
    Direction.DOWN: math.pi / 2,
    Direction.LEFT: math.pi,
    Direction.RIGHT: 0.0,
}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass
class PlayerState:
    """Externally owned player; the engine only writes ``hp``."""
    x: float
    y: float
    facing: Direction = Direction.RIGHT
    hp: int = 100
    max_hp: int = 100

    def __post_init__(self) -> None:
        self.hp = _clamp(self.hp, 0, self.max_hp)

    @property
    def alive(self) -> bool:
        return self.hp > 0

    def set_hp(self, value: int) -> int:
        self.hp = _clamp(value, 0, self.max_hp)
        return self.hp

    def apply_damage(self, amount: int) -> int:
        return self.set_hp(self.hp - max(0, amount))

    def restore(self) -> None:
        self.hp = self.max_hp


@dataclass
class Target:
    """Hostile entity that can be engaged by at most one session at a time."""
    id: str
    x: float
    y: float
    subject: str
    level: int = 1
    hp: int = 30
    max_hp: int = 30
    engaged: bool = False

    def __post_init__(self) -> None:
        if self.level < 1:
            raise ValueError(f"Target level must be >= 1, got {self.level}")
        self.hp = _clamp(self.hp, 0, self.max_hp)

    @property
    def alive(self) -> bool:
        return self.hp > 0

    def take_damage(self, amount: int) -> int:
        self.hp = _clamp(self.hp - max(0, amount), 0, self.max_hp)
        return self.hp
