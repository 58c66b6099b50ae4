"""JSON-lines protocol messages for UI bridge communication."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional

from quizdungeon.engine.session import (
    Defeat,
    QuestionPresented,
    RoundResolved,
    SessionEnded,
    SessionEvent,
    Victory,
)


@dataclass
class Request:
    """Incoming request from the UI."""
    id: int
    method: str
    params: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> Request:
        return cls(
            id=data["id"],
            method=data["method"],
            params=data.get("params", {}),
        )


@dataclass
class Response:
    """Outgoing response to the UI."""
    id: int
    result: Optional[dict] = None
    error: Optional[str] = None

    def to_json_line(self) -> str:
        d = {"id": self.id}
        if self.error is not None:
            d["error"] = self.error
        else:
            d["result"] = self.result
        return json.dumps(d) + "\n"


@dataclass
class Notification:
    """Server-initiated message (no id, no response expected)."""
    method: str
    params: dict = field(default_factory=dict)

    def to_json_line(self) -> str:
        return json.dumps({"method": self.method, "params": self.params}) + "\n"


def event_to_notification(event: SessionEvent) -> Notification:
    """Translate a combat session event into the wire notification."""
    if isinstance(event, QuestionPresented):
        q = event.question
        return Notification("questionPresented", {
            "questionId": q.id,
            "subject": q.subject,
            "text": q.text,
            "answers": list(q.answers),
            "round": event.round_number,
            "rating": event.rating,
            "questionLevel": event.budget.question_level,
            "timeLimitSeconds": event.budget.time_limit_seconds,
        })
    if isinstance(event, RoundResolved):
        return Notification("roundResolved", {
            "questionId": event.question_id,
            "selectedIndex": event.selected_index,
            "correct": event.correct,
            "timedOut": event.timed_out,
            "feedback": event.feedback,
            "damage": event.damage,
            "playerHp": event.player_hp,
            "targetHp": event.target_hp,
            "rating": event.rating,
            "logged": event.logged,
        })
    if isinstance(event, Victory):
        return Notification("victory", {"reward": event.reward})
    if isinstance(event, Defeat):
        return Notification("defeat", {"playerHp": event.player_hp})
    if isinstance(event, SessionEnded):
        return Notification("sessionEnded", {"reason": event.reason.value})
    raise TypeError(f"Unknown session event: {type(event).__name__}")
