"""Shared fixtures for QuizDungeon tests."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest
import yaml

from quizdungeon.config.settings import CombatConfig, Settings
from quizdungeon.engine.entities import PlayerState, Target
from quizdungeon.engine.rating import AnswerRecord, Outcome
from quizdungeon.engine.services import CatalogQuestion
from quizdungeon.engine.session import CombatSession


class FakeServices:
    """In-memory answer log, catalog and experience ledger with failure switches."""

    def __init__(self, questions: list[CatalogQuestion]):
        self.questions = questions
        self.records: list[AnswerRecord] = []
        self.appended: list[tuple] = []
        self.grants: list[tuple] = []
        self.fail_append = False
        self.fail_history = False
        self.fail_catalog = False
        self.fail_grant = False
        self.append_gate: Optional[asyncio.Event] = None
        self.grant_gate: Optional[asyncio.Event] = None
        self._subject_of = {q.id: q.subject for q in questions}

    def seed_history(self, user_id: str, subject: str, outcomes: list[Outcome]) -> None:
        for i, outcome in enumerate(outcomes):
            self.records.append(AnswerRecord(
                user_id=user_id, question_id=1000 + i, subject=subject,
                outcome=outcome, answered_at=float(i),
            ))

    async def append_outcome(self, user_id, question_id, selected_index, correct, elapsed_ms, timed_out):
        if self.append_gate is not None:
            await self.append_gate.wait()
        if self.fail_append:
            raise ConnectionError("answer log offline")
        self.appended.append((user_id, question_id, selected_index, correct, timed_out))
        self.records.append(AnswerRecord(
            user_id=user_id,
            question_id=question_id,
            subject=self._subject_of.get(question_id, ""),
            outcome=Outcome.from_flags(correct, timed_out),
            answered_at=float(len(self.records)),
            selected_index=selected_index,
            elapsed_ms=elapsed_ms,
        ))
        return True

    async def read_history(self, user_id, subject=None):
        if self.fail_history:
            raise ConnectionError("answer log offline")
        return [
            r for r in self.records
            if r.user_id == user_id and (subject is None or r.subject == subject)
        ]

    async def questions_for_subject(self, subject, requester_rating, user_id=None):
        if self.fail_catalog:
            raise ConnectionError("catalog offline")
        level = 11 - requester_rating if requester_rating is not None else None
        return [
            CatalogQuestion(
                id=q.id, subject=q.subject, text=q.text, answers=q.answers,
                correct_index=q.correct_index, derived_level=level,
            )
            for q in self.questions
            if q.subject == subject
        ]

    async def grant_experience(self, user_id, amount, reason, context):
        if self.grant_gate is not None:
            await self.grant_gate.wait()
        if self.fail_grant:
            raise ConnectionError("ledger offline")
        self.grants.append((user_id, amount, reason, context))
        return True


def make_questions(subject: str = "math", count: int = 6) -> list[CatalogQuestion]:
    return [
        CatalogQuestion(
            id=i,
            subject=subject,
            text=f"Question {i}?",
            answers=(f"right {i}", f"wrong {i}a", f"wrong {i}b", f"wrong {i}c"),
            correct_index=0,
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        combat=CombatConfig(feedback_delay_seconds=0, io_timeout_seconds=1.0),
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def services():
    return FakeServices(make_questions())


@pytest.fixture
def player():
    return PlayerState(x=0, y=0, hp=100, max_hp=100)


@pytest.fixture
def target():
    return Target(id="goblin", x=32, y=0, subject="math", level=5, hp=30, max_hp=30)


@pytest.fixture
def events():
    return []


@pytest.fixture
def session(services, player, settings, events):
    return CombatSession(
        user_id="u1",
        player=player,
        answer_log=services,
        catalog=services,
        ledger=services,
        settings=settings,
        listener=events.append,
    )


@pytest.fixture
def banks_dir(tmp_path):
    """A single small bank so store tests don't depend on shipped content."""
    bank_dir = tmp_path / "banks"
    bank_dir.mkdir()
    bank = {
        "subject": "math",
        "name": "Mathematics",
        "questions": [
            {"question": "2 + 2?", "answers": ["4", "3", "5", "22"], "correct": 0},
            {"question": "3 × 3?", "answers": ["6", "9", "33", "1"], "correct": 1},
            {"question": "10 / 2?", "answers": ["2", "8", "5", "12"], "correct": 2},
        ],
    }
    with open(bank_dir / "math.yaml", "w") as f:
        yaml.dump(bank, f, allow_unicode=True)
    return bank_dir
