"""Home screen — subject and enemy selection."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, OptionList, Static
from textual.widgets.option_list import Option

from quizdungeon.engine.progression import level_info
from quizdungeon.state.store import GameStore

ENEMY_LEVELS = (1, 3, 5, 8)


class HomeScreen(Screen):
    """Pick a subject and how tough the enemy should be."""

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    CSS = """
    #home-container {
        align: center middle;
        padding: 2 4;
    }
    """

    def __init__(self, store: GameStore, user_id: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.store = store
        self.user_id = user_id
        self.selected_subject: str | None = None
        self.enemy_level: int = ENEMY_LEVELS[0]

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Vertical(id="home-container"):
            yield Static("[bold]QuizDungeon[/]\n[dim]Answer fast. Answer right.[/]", id="home-title")
            yield Static("", id="player-level")

            yield Label("\n[bold]Choose a subject:[/]")
            yield OptionList(
                *[
                    Option(f"{s.name}  [dim]({s.question_count} questions)[/]", id=s.subject)
                    for s in self.store.subjects()
                ],
                id="subject-list",
            )

            yield Label("\n[bold]Enemy level:[/]")
            with Horizontal(id="level-buttons"):
                for lvl in ENEMY_LEVELS:
                    yield Button(f"Lv {lvl}", id=f"level-{lvl}", variant="default")

            yield Button("Fight →", id="fight-btn", variant="primary", disabled=True)
        yield Footer()

    def on_mount(self) -> None:
        self._highlight_level(self.enemy_level)
        self.refresh_level()

    def on_screen_resume(self) -> None:
        self.refresh_level()

    def refresh_level(self) -> None:
        info = level_info(self.store.total_experience(self.user_id))
        self.query_one("#player-level", Static).update(
            f"Level {info.level} — {info.xp_into_level}/{info.xp_needed_for_next_level} XP"
        )

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self.selected_subject = event.option.id
        self.query_one("#fight-btn", Button).disabled = False

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id.startswith("level-"):
            self.enemy_level = int(button_id.split("-", 1)[1])
            self._highlight_level(self.enemy_level)
        elif button_id == "fight-btn" and self.selected_subject:
            self.app.start_encounter(self.selected_subject, self.enemy_level)

    def _highlight_level(self, active: int) -> None:
        for lvl in ENEMY_LEVELS:
            btn = self.query_one(f"#level-{lvl}", Button)
            btn.variant = "primary" if lvl == active else "default"
