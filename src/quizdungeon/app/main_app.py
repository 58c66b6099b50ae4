"""QuizDungeon Textual arena."""

from __future__ import annotations

import random
from typing import Optional

from textual.app import App

from quizdungeon.app.screens.combat_screen import CombatScreen
from quizdungeon.app.screens.home_screen import HomeScreen
from quizdungeon.config.settings import Settings
from quizdungeon.engine.entities import PlayerState, Target
from quizdungeon.engine.session import CombatSession
from quizdungeon.state.store import GameStore


class QuizDungeonApp(App):
    """Terminal arena for quiz combat encounters."""

    TITLE = "QuizDungeon"
    SUB_TITLE = "Adaptive quiz combat"

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        user_id: str = "player",
        settings: Optional[Settings] = None,
        store: Optional[GameStore] = None,
        seed: Optional[int] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.user_id = user_id
        self.settings = settings or Settings.load()
        self.store = store or GameStore(db_path=self.settings.data_dir / "game.db")
        self.rng = random.Random(seed)
        max_hp = self.settings.combat.player_max_hp
        self.player = PlayerState(x=0, y=0, hp=max_hp, max_hp=max_hp)
        self._encounters = 0

    def on_mount(self) -> None:
        self.push_screen(HomeScreen(store=self.store, user_id=self.user_id))

    def start_encounter(self, subject: str, enemy_level: int) -> None:
        """Called by HomeScreen to begin a fight."""
        self._encounters += 1
        hp = 20 + 5 * enemy_level
        target = Target(
            id=f"enemy-{self._encounters}",
            x=0, y=0,
            subject=subject,
            level=enemy_level,
            hp=hp,
            max_hp=hp,
        )
        session = CombatSession(
            user_id=self.user_id,
            player=self.player,
            answer_log=self.store,
            catalog=self.store,
            ledger=self.store,
            settings=self.settings,
            rng=self.rng,
        )
        self.push_screen(CombatScreen(session=session, target=target))
