"""SQLite-backed answer log, question catalog and experience ledger."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from quizdungeon.catalog.loader import load_banks
from quizdungeon.engine.rating import AnswerRecord, Outcome, question_ratings, round_half_up
from quizdungeon.engine.services import CatalogQuestion


@dataclass
class SubjectInfo:
    subject: str
    name: str
    question_count: int


class GameStore:
    """Reference implementation of the storage collaborators.

    Seeds its question table from the YAML banks on first use.
    """

    def __init__(self, db_path: Optional[Path] = None, banks_dir: Optional[Path] = None):
        self.db_path = db_path or (Path.home() / ".quizdungeon" / "game.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._banks_dir = banks_dir
        self._init_db()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subject_key TEXT NOT NULL,
                    subject_name TEXT NOT NULL,
                    question TEXT NOT NULL,
                    answer_0 TEXT NOT NULL,
                    answer_1 TEXT NOT NULL,
                    answer_2 TEXT NOT NULL,
                    answer_3 TEXT NOT NULL,
                    correct_index INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS answer_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    question_id INTEGER NOT NULL,
                    selected_answer_index INTEGER NOT NULL,
                    is_correct INTEGER NOT NULL,
                    answer_time_ms INTEGER NOT NULL,
                    timeout_occurred INTEGER NOT NULL,
                    answered_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS xp_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    reason TEXT NOT NULL,
                    context TEXT DEFAULT '{}',
                    created_at TEXT NOT NULL
                )
            """)
            count = conn.execute("SELECT COUNT(*) FROM questions").fetchone()[0]
            if count == 0:
                self._seed(conn)

    def _seed(self, conn: sqlite3.Connection) -> None:
        rows = [
            (bank.subject, bank.name, q.text, *q.answers, q.correct)
            for bank in load_banks(self._banks_dir)
            for q in bank.questions
        ]
        conn.executemany(
            """INSERT INTO questions
               (subject_key, subject_name, question, answer_0, answer_1, answer_2, answer_3, correct_index)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            rows,
        )

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    # --- Questions ---

    def subjects(self) -> list[SubjectInfo]:
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT subject_key, subject_name, COUNT(*) FROM questions
                   GROUP BY subject_key, subject_name ORDER BY subject_key"""
            ).fetchall()
        return [SubjectInfo(subject=r[0], name=r[1], question_count=r[2]) for r in rows]

    def questions(self, subject: str) -> list[CatalogQuestion]:
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT id, subject_key, question, answer_0, answer_1, answer_2, answer_3, correct_index
                   FROM questions WHERE subject_key = ? ORDER BY id""",
                (subject,),
            ).fetchall()
        return [
            CatalogQuestion(
                id=r[0], subject=r[1], text=r[2],
                answers=(r[3], r[4], r[5], r[6]), correct_index=r[7],
            )
            for r in rows
        ]

    # --- Answer log ---

    def record_answer(
        self,
        user_id: str,
        question_id: int,
        selected_index: int,
        correct: bool,
        elapsed_ms: int,
        timed_out: bool,
    ) -> None:
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO answer_log
                   (user_id, question_id, selected_answer_index, is_correct,
                    answer_time_ms, timeout_occurred, answered_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (user_id, question_id, selected_index, int(correct), elapsed_ms,
                 int(timed_out), datetime.now().timestamp()),
            )

    def history(self, user_id: str, subject: Optional[str] = None) -> list[AnswerRecord]:
        """Answers oldest first, optionally limited to one subject."""
        query = """
            SELECT a.question_id, q.subject_key, a.is_correct, a.timeout_occurred,
                   a.answered_at, a.selected_answer_index, a.answer_time_ms
            FROM answer_log a JOIN questions q ON a.question_id = q.id
            WHERE a.user_id = ?
        """
        params: list = [user_id]
        if subject is not None:
            query += " AND q.subject_key = ?"
            params.append(subject)
        query += " ORDER BY a.answered_at, a.id"
        with self._conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            AnswerRecord(
                user_id=user_id,
                question_id=r[0],
                subject=r[1],
                outcome=Outcome.from_flags(bool(r[2]), bool(r[3])),
                answered_at=r[4],
                selected_index=r[5],
                elapsed_ms=r[6],
            )
            for r in rows
        ]

    # --- Experience ---

    def add_experience(self, user_id: str, amount: int, reason: str, context: Optional[dict] = None) -> None:
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO xp_log (user_id, amount, reason, context, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, amount, reason, json.dumps(context or {}), datetime.now().isoformat()),
            )

    def total_experience(self, user_id: str) -> int:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(amount), 0) FROM xp_log WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row[0])

    # --- Async collaborator surface used by the combat engine ---

    async def append_outcome(
        self,
        user_id: str,
        question_id: int,
        selected_index: int,
        correct: bool,
        elapsed_ms: int,
        timed_out: bool,
    ) -> bool:
        self.record_answer(user_id, question_id, selected_index, correct, elapsed_ms, timed_out)
        return True

    async def read_history(self, user_id: str, subject: Optional[str] = None) -> list[AnswerRecord]:
        return self.history(user_id, subject)

    async def questions_for_subject(
        self,
        subject: str,
        requester_rating: Optional[int],
        user_id: Optional[str] = None,
    ) -> list[CatalogQuestion]:
        """Questions annotated with a level derived from the requester's ratings.

        A question the user has answered before uses its own folded rating;
        otherwise the subject rating applies.
        """
        per_question = question_ratings(self.history(user_id, subject)) if user_id else {}
        annotated = []
        for q in self.questions(subject):
            if q.id in per_question:
                level = 11 - round_half_up(per_question[q.id])
            elif requester_rating is not None:
                level = 11 - requester_rating
            else:
                level = None
            annotated.append(CatalogQuestion(
                id=q.id, subject=q.subject, text=q.text,
                answers=q.answers, correct_index=q.correct_index, derived_level=level,
            ))
        return annotated

    async def grant_experience(self, user_id: str, amount: int, reason: str, context: dict) -> bool:
        self.add_experience(user_id, amount, reason, context)
        return True
