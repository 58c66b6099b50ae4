"""Combat screen — one encounter driven by a CombatSession."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Static

from quizdungeon.app.widgets.health_bar import HealthBar
from quizdungeon.engine.entities import Direction, Target
from quizdungeon.engine.session import (
    CombatSession,
    Defeat,
    EndReason,
    QuestionPresented,
    RoundResolved,
    SessionEnded,
    SessionEvent,
    Victory,
)

_END_TEXT = {
    EndReason.EXHAUSTED: "[yellow]No questions left — the enemy slips away.[/]",
    EndReason.ERROR: "[yellow]The question catalog is unavailable. Retreat![/]",
    EndReason.ABORTED: "[dim]You fled the fight.[/]",
}


class CombatScreen(Screen):
    """Question, four answers, countdown and health for both sides."""

    BINDINGS = [
        Binding("1", "answer(0)", "A", show=False),
        Binding("2", "answer(1)", "B", show=False),
        Binding("3", "answer(2)", "C", show=False),
        Binding("4", "answer(3)", "D", show=False),
        Binding("escape", "leave", "Flee / back", show=True),
    ]

    CSS = """
    #combat-layout { padding: 1 2; }
    .answer { width: 100%; margin: 0 0 1 0; }
    #feedback { height: 3; }
    """

    def __init__(self, session: CombatSession, target: Target, **kwargs) -> None:
        super().__init__(**kwargs)
        self.session = session
        self.session.listener = self.on_session_event
        self.target = target

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Vertical(id="combat-layout"):
            yield HealthBar(
                f"Lv {self.target.level} {self.target.subject}",
                self.target.hp, self.target.max_hp, id="enemy-hp",
            )
            yield HealthBar("You", self.session.player.hp, self.session.player.max_hp, id="player-hp")
            yield Static("", id="timer")
            yield Static("[dim]Engaging...[/]", id="question-text")
            for i in range(4):
                yield Button("", id=f"answer-{i}", classes="answer", disabled=True)
            yield Static("", id="feedback")
        yield Footer()

    def on_mount(self) -> None:
        self.set_interval(0.1, self._tick)
        self.run_worker(self._engage(), exclusive=True)

    async def _engage(self) -> None:
        player = self.session.player
        # Put the enemy one tile in front of the player so the cone check hits.
        tile = self.session.settings.targeting.tile_size
        self.target.x, self.target.y = player.x + tile, player.y
        player.facing = Direction.RIGHT
        engaged = await self.session.engage([self.target])
        if engaged is None and not self.session.active:
            self.query_one("#question-text", Static).update(
                "[red]Could not start the encounter. Press Esc to go back.[/]"
            )

    def _tick(self) -> None:
        remaining = self.session.time_remaining()
        timer = self.query_one("#timer", Static)
        timer.update(f"[bold]⏱ {remaining:4.1f}s[/]" if remaining else "")

    # ── Session events ──

    def on_session_event(self, event: SessionEvent) -> None:
        if isinstance(event, QuestionPresented):
            self._show_question(event)
        elif isinstance(event, RoundResolved):
            self._set_answers_enabled(False)
            self.query_one("#enemy-hp", HealthBar).set_value(event.target_hp)
            self.query_one("#player-hp", HealthBar).set_value(event.player_hp)
            color = "green" if event.correct else "red"
            self.query_one("#feedback", Static).update(f"[{color}]{event.feedback}[/]")
        elif isinstance(event, Victory):
            self.query_one("#question-text", Static).update(
                f"[green bold]Victory! +{event.reward} XP[/]\n[dim]Press Esc to continue.[/]"
            )
        elif isinstance(event, Defeat):
            self.query_one("#question-text", Static).update(
                "[red bold]You were defeated.[/]\n[dim]Press Esc to restart.[/]"
            )
        elif isinstance(event, SessionEnded):
            self._set_answers_enabled(False)
            text = _END_TEXT.get(event.reason)
            if text:
                self.query_one("#question-text", Static).update(text)

    def _show_question(self, event: QuestionPresented) -> None:
        q = event.question
        self.query_one("#question-text", Static).update(
            f"[bold]Round {event.round_number}[/]  [dim]rating {event.rating}[/]\n\n{q.text}"
        )
        for i, answer in enumerate(q.answers):
            self.query_one(f"#answer-{i}", Button).label = f"{i + 1}. {answer}"
        self.query_one("#feedback", Static).update("")
        self._set_answers_enabled(True)

    def _set_answers_enabled(self, enabled: bool) -> None:
        for i in range(4):
            self.query_one(f"#answer-{i}", Button).disabled = not enabled

    # ── Input ──

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id.startswith("answer-"):
            self.action_answer(int(button_id.split("-", 1)[1]))

    def action_answer(self, index: int) -> None:
        self.run_worker(self.session.submit_answer(index))

    def action_leave(self) -> None:
        if self.session.active:
            self.session.abort()
            return
        if self.session.defeated:
            self.session.player.restore()
        self.app.pop_screen()
