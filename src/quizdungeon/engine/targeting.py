"""Attack-cone targeting: which live enemies can be engaged from here."""

from __future__ import annotations

import math
from typing import Iterable, Optional, TypeVar

from quizdungeon.config.settings import TargetingConfig
from quizdungeon.engine.entities import Direction, PlayerState, Target

DEFAULT_CONE_ANGLE = 75.0

T = TypeVar("T", bound=Target)


def normalize_angle(diff: float) -> float:
    """Fold an angle difference into (-pi, pi]."""
    while diff > math.pi:
        diff -= 2 * math.pi
    while diff <= -math.pi:
        diff += 2 * math.pi
    return diff


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.hypot(x2 - x1, y2 - y1)


def is_in_cone(
    origin_x: float,
    origin_y: float,
    facing: Direction,
    target_x: float,
    target_y: float,
    cone_angle_degrees: float = DEFAULT_CONE_ANGLE,
) -> bool:
    """Return True if the target point lies inside the facing cone.

    Both boundaries (plus and minus half the cone) are inclusive.
    """
    angle_to_target = math.atan2(target_y - origin_y, target_x - origin_x)
    diff = normalize_angle(angle_to_target - facing.angle)
    half_cone = math.radians(cone_angle_degrees / 2)
    return abs(diff) <= half_cone


def targets_in_cone(
    origin_x: float,
    origin_y: float,
    facing: Direction,
    targets: Iterable[T],
    tile_size: float,
    reach: float,
    cone_angle_degrees: float = DEFAULT_CONE_ANGLE,
) -> list[T]:
    """Live targets within ``reach`` pixels and inside the facing cone.

    Positions are top-left corners; distance and angle are measured between
    cell centres. Input order is preserved.
    """
    half = tile_size / 2
    cx, cy = origin_x + half, origin_y + half
    hits = []
    for target in targets:
        if not target.alive:
            continue
        tx, ty = target.x + half, target.y + half
        if distance(cx, cy, tx, ty) > reach:
            continue
        if is_in_cone(cx, cy, facing, tx, ty, cone_angle_degrees):
            hits.append(target)
    return hits


def find_engagement_target(
    player: PlayerState,
    targets: Iterable[T],
    config: Optional[TargetingConfig] = None,
) -> Optional[T]:
    """Pick the nearest engageable target in front of the player.

    Ties keep candidate order, so the choice is reproducible.
    """
    config = config or TargetingConfig()
    hits = [
        t for t in targets_in_cone(
            player.x, player.y, player.facing, targets,
            tile_size=config.tile_size,
            reach=config.reach_px,
            cone_angle_degrees=config.cone_angle_degrees,
        )
        if not t.engaged
    ]
    if not hits:
        return None
    return min(hits, key=lambda t: distance(player.x, player.y, t.x, t.y))
