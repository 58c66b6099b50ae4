"""Pick the next question for a round from a subject's catalog."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Optional

from quizdungeon.engine.services import CatalogQuestion


@dataclass(frozen=True)
class SelectedQuestion:
    id: int
    subject: str
    text: str
    answers: tuple[str, ...]
    correct_index: int
    derived_level: Optional[int]

    @property
    def correct_answer(self) -> str:
        return self.answers[self.correct_index]


def _level_distance(question: CatalogQuestion, enemy_level: int) -> float:
    if question.derived_level is None:
        return float("inf")
    return abs(question.derived_level - enemy_level)


def shuffle_answers(question: CatalogQuestion, rng: random.Random) -> SelectedQuestion:
    order = list(range(len(question.answers)))
    rng.shuffle(order)
    return SelectedQuestion(
        id=question.id,
        subject=question.subject,
        text=question.text,
        answers=tuple(question.answers[i] for i in order),
        correct_index=order.index(question.correct_index),
        derived_level=question.derived_level,
    )


def select_question(
    pool: Iterable[CatalogQuestion],
    enemy_level: int,
    used_ids: AbstractSet[int] = frozenset(),
    rng: Optional[random.Random] = None,
) -> Optional[SelectedQuestion]:
    """Closest derived level to ``enemy_level`` among unused questions.

    Ties go to the lowest question id. Questions without a derived level
    are only picked when nothing else is left. Returns None when every
    question has been used.
    """
    candidates = [q for q in pool if q.id not in used_ids]
    if not candidates:
        return None

    best = min(candidates, key=lambda q: (_level_distance(q, enemy_level), q.id))
    if rng is not None:
        return shuffle_answers(best, rng)
    return SelectedQuestion(
        id=best.id,
        subject=best.subject,
        text=best.text,
        answers=tuple(best.answers),
        correct_index=best.correct_index,
        derived_level=best.derived_level,
    )
