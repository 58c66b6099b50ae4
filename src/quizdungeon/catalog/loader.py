"""YAML question bank parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

BANKS_DIR = Path(__file__).parent / "banks"


@dataclass
class BankQuestion:
    text: str
    answers: list[str]
    correct: int


@dataclass
class QuestionBank:
    subject: str  # key, e.g. "mathematics"
    name: str  # display name
    questions: list[BankQuestion] = field(default_factory=list)


def load_bank(bank_file: Path) -> QuestionBank:
    """Load one ``<subject>.yaml`` question bank."""
    with open(bank_file, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    subject = data.get("subject") or bank_file.stem
    questions = []
    for i, raw in enumerate(data.get("questions", [])):
        answers = [str(a) for a in raw.get("answers", [])]
        correct = raw.get("correct", 0)
        if len(answers) != 4:
            raise ValueError(f"{bank_file.name} question {i}: expected 4 answers, got {len(answers)}")
        if not 0 <= correct < 4:
            raise ValueError(f"{bank_file.name} question {i}: correct index {correct} out of range")
        questions.append(BankQuestion(text=raw["question"], answers=answers, correct=correct))

    return QuestionBank(
        subject=subject,
        name=data.get("name", subject.title()),
        questions=questions,
    )


def load_banks(banks_dir: Optional[Path] = None) -> list[QuestionBank]:
    """Load every bank in ``banks_dir``, sorted by file name."""
    banks_dir = banks_dir or BANKS_DIR
    return [load_bank(path) for path in sorted(banks_dir.glob("*.yaml"))]
