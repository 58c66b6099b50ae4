"""Per-subject skill rating, recomputed from answer history.

The rating is never stored. It is always the fold of the ordered answer
log (oldest first) through ``step_rating`` starting at 5.0, with rounding to
one decimal at every step. Consumers see the half-up rounded integer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from quizdungeon.engine.services import AnswerLog

MIN_RATING = 1.0
MAX_RATING = 10.0
DEFAULT_RATING = 5.0


class Outcome(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    TIMED_OUT = "timed_out"

    @classmethod
    def from_flags(cls, correct: bool, timed_out: bool) -> "Outcome":
        if timed_out:
            return cls.TIMED_OUT
        return cls.CORRECT if correct else cls.INCORRECT


@dataclass(frozen=True)
class AnswerRecord:
    user_id: str
    question_id: int
    subject: str
    outcome: Outcome
    answered_at: float = 0.0
    selected_index: int = -1
    elapsed_ms: int = 0


def step_rating(rating: float, outcome: Outcome) -> float:
    if outcome is Outcome.CORRECT:
        return math.ceil((rating + (MAX_RATING - rating) / 3) * 10) / 10
    return math.floor((rating - (rating - MIN_RATING) / 4) * 10) / 10


def fold_rating(outcomes: Iterable[Outcome], start: float = DEFAULT_RATING) -> float:
    rating = start
    for outcome in outcomes:
        rating = step_rating(rating, outcome)
    return rating


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def exposed_rating(outcomes: Iterable[Outcome]) -> int:
    return round_half_up(fold_rating(outcomes))


def question_ratings(history: Iterable[AnswerRecord]) -> dict[int, float]:
    """Fold each question's own history separately."""
    ratings: dict[int, float] = {}
    for record in history:
        current = ratings.get(record.question_id, DEFAULT_RATING)
        ratings[record.question_id] = step_rating(current, record.outcome)
    return ratings


@dataclass
class QuestionStats:
    question_id: int
    correct: int = 0
    wrong: int = 0
    timeout: int = 0
    rating: float = DEFAULT_RATING

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.CORRECT:
            self.correct += 1
        elif outcome is Outcome.TIMED_OUT:
            self.timeout += 1
        else:
            self.wrong += 1
        self.rating = step_rating(self.rating, outcome)


@dataclass
class SubjectStats:
    subject: str
    questions: list[QuestionStats] = field(default_factory=list)

    @property
    def average_rating(self) -> int:
        if not self.questions:
            return int(DEFAULT_RATING)
        rounded = [round_half_up(q.rating) for q in self.questions]
        return round_half_up(sum(rounded) / len(rounded))


def subject_statistics(history: Iterable[AnswerRecord]) -> dict[str, SubjectStats]:
    """Per-subject, per-question answer counts and ratings."""
    by_question: dict[int, QuestionStats] = {}
    subject_of: dict[int, str] = {}
    for record in history:
        stats = by_question.get(record.question_id)
        if stats is None:
            stats = by_question[record.question_id] = QuestionStats(record.question_id)
            subject_of[record.question_id] = record.subject
        stats.record(record.outcome)

    result: dict[str, SubjectStats] = {}
    for qid in sorted(by_question):
        subject = subject_of[qid]
        result.setdefault(subject, SubjectStats(subject)).questions.append(by_question[qid])
    return result


class RatingTracker:
    """Reads a user's answer history and folds it into a rating."""

    def __init__(self, answer_log: "AnswerLog", start: float = DEFAULT_RATING):
        self.answer_log = answer_log
        self.start = start

    async def raw_rating(self, user_id: str, subject: str) -> float:
        history = await self.answer_log.read_history(user_id, subject)
        return fold_rating((r.outcome for r in history), start=self.start)

    async def rating(self, user_id: str, subject: str) -> int:
        return round_half_up(await self.raw_rating(user_id, subject))

    async def statistics(self, user_id: str, subject: Optional[str] = None) -> dict[str, SubjectStats]:
        history = await self.answer_log.read_history(user_id, subject)
        return subject_statistics(history)
