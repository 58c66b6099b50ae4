"""Configuration model for QuizDungeon."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class CombatConfig(BaseModel):
    player_max_hp: int = 100
    feedback_delay_seconds: float = 1.5
    default_rating: int = 5
    default_question_level: int = 6
    time_base_seconds: int = 13
    time_min_seconds: int = 3
    time_max_seconds: int = 25
    io_timeout_seconds: float = 5.0


class TargetingConfig(BaseModel):
    tile_size: int = 32
    reach_tiles: float = 1.5
    cone_angle_degrees: float = 75.0

    @property
    def reach_px(self) -> float:
        return self.reach_tiles * self.tile_size


class DamageConfig(BaseModel):
    base_dealt: int = 10
    dealt_per_point: int = Field(default=2, ge=0)
    base_taken: int = 10
    taken_per_point: int = Field(default=2, ge=0)
    min_damage: int = Field(default=1, ge=0)


class Settings(BaseModel):
    combat: CombatConfig = Field(default_factory=CombatConfig)
    targeting: TargetingConfig = Field(default_factory=TargetingConfig)
    damage: DamageConfig = Field(default_factory=DamageConfig)
    log_level: str = "INFO"
    data_dir: Path = Path.home() / ".quizdungeon"

    def get_log_level(self) -> str:
        return os.environ.get("QUIZDUNGEON_LOG_LEVEL") or self.log_level

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        config_path = config_path or (Path.home() / ".quizdungeon" / "config.yaml")
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        return cls()

    def save(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.data_dir / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
