"""Contracts for the collaborators the combat engine calls.

The engine never owns persistence or question content; it talks to these
narrow interfaces. ``quizdungeon.state.store.GameStore`` implements all
three storage-side protocols on SQLite.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from quizdungeon.engine.rating import AnswerRecord

ANSWER_COUNT = 4


@dataclass(frozen=True)
class CatalogQuestion:
    id: int
    subject: str
    text: str
    answers: tuple[str, ...]
    correct_index: int
    derived_level: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.answers) != ANSWER_COUNT:
            raise ValueError(
                f"Question {self.id} needs {ANSWER_COUNT} answers, got {len(self.answers)}"
            )
        if not 0 <= self.correct_index < ANSWER_COUNT:
            raise ValueError(f"Question {self.id} has invalid correct index {self.correct_index}")


class AnswerLog(Protocol):
    async def append_outcome(
        self,
        user_id: str,
        question_id: int,
        selected_index: int,
        correct: bool,
        elapsed_ms: int,
        timed_out: bool,
    ) -> bool: ...

    async def read_history(
        self, user_id: str, subject: Optional[str] = None,
    ) -> list[AnswerRecord]: ...


class QuestionCatalog(Protocol):
    async def questions_for_subject(
        self,
        subject: str,
        requester_rating: Optional[int],
        user_id: Optional[str] = None,
    ) -> list[CatalogQuestion]: ...


class ExperienceLedger(Protocol):
    async def grant_experience(
        self, user_id: str, amount: int, reason: str, context: dict,
    ) -> bool: ...


class DamageFunction(Protocol):
    """Must be monotonic in rating: dealt never falls, taken never rises."""

    def damage_dealt(self, rating: int, enemy_level: int) -> int: ...

    def damage_taken(self, rating: int, enemy_level: int) -> int: ...
