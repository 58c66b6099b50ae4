"""Server handler: dispatches JSON-lines requests to the combat engine."""

from __future__ import annotations

import random
from dataclasses import asdict
from typing import Callable, Optional

from quizdungeon.config.settings import Settings
from quizdungeon.engine.entities import Direction, PlayerState, Target
from quizdungeon.engine.progression import level_info
from quizdungeon.engine.rating import RatingTracker
from quizdungeon.engine.session import CombatSession, SessionEvent
from quizdungeon.engine.targeting import targets_in_cone
from quizdungeon.state.store import GameStore

from .protocol import Notification, event_to_notification


def _player_from_dict(data: dict, max_hp: int) -> PlayerState:
    return PlayerState(
        x=data["x"],
        y=data["y"],
        facing=Direction(data.get("facing", "right")),
        hp=data.get("hp", max_hp),
        max_hp=data.get("maxHp", max_hp),
    )


def _target_from_dict(data: dict) -> Target:
    hp = data.get("hp", 30)
    return Target(
        id=str(data["id"]),
        x=data["x"],
        y=data["y"],
        subject=data["subject"],
        level=data.get("level", 1),
        hp=hp,
        max_hp=data.get("maxHp", hp),
    )


def _session_to_dict(session: Optional[CombatSession]) -> dict:
    if session is None:
        return {"state": "idle"}
    q = session.question
    return {
        "state": session.state.value,
        "targetId": session.target.id if session.target else None,
        "targetHp": session.target.hp if session.target else None,
        "playerHp": session.player.hp,
        "rating": session.rating,
        "round": session.round_number,
        "questionId": q.id if q else None,
        "timeRemaining": session.time_remaining(),
        "endReason": session.end_reason.value if session.end_reason else None,
        "reward": session.reward,
        "defeated": session.defeated,
    }


class ServerHandler:
    """Routes incoming requests to engine methods and returns result dicts."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        write_notification: Optional[Callable[[Notification], None]] = None,
        store: Optional[GameStore] = None,
        seed: Optional[int] = None,
    ):
        self.settings = settings or Settings.load()
        self._write_notification = write_notification or (lambda n: None)
        self.store = store or GameStore(db_path=self.settings.data_dir / "game.db")
        self.tracker = RatingTracker(self.store, start=self.settings.combat.default_rating)
        self._rng = random.Random(seed)
        self._session: Optional[CombatSession] = None

    async def dispatch(self, msg: dict) -> dict:
        """Route a request message to the appropriate handler method."""
        method = msg.get("method", "")
        params = msg.get("params", {})

        handler_map = {
            "listSubjects": self._list_subjects,
            "getStats": self._get_stats,
            "getLevelInfo": self._get_level_info,
            "findTargets": self._find_targets,
            "startEngagement": self._start_engagement,
            "submitAnswer": self._submit_answer,
            "abort": self._abort,
            "getSession": self._get_session,
        }

        handler = handler_map.get(method)
        if handler is None:
            raise ValueError(f"Unknown method: {method}")

        return await handler(params)

    def _on_event(self, event: SessionEvent) -> None:
        self._write_notification(event_to_notification(event))

    async def _list_subjects(self, params: dict) -> dict:
        return {
            "subjects": [
                {"subject": s.subject, "name": s.name, "questionCount": s.question_count}
                for s in self.store.subjects()
            ]
        }

    async def _get_stats(self, params: dict) -> dict:
        user_id = str(params["userId"])
        stats = await self.tracker.statistics(user_id, params.get("subject"))
        return {
            subject: {
                "averageRating": s.average_rating,
                "questions": [asdict(q) for q in s.questions],
            }
            for subject, s in stats.items()
        }

    async def _get_level_info(self, params: dict) -> dict:
        user_id = str(params["userId"])
        info = level_info(self.store.total_experience(user_id))
        return asdict(info)

    async def _find_targets(self, params: dict) -> dict:
        player = _player_from_dict(params["player"], self.settings.combat.player_max_hp)
        targets = [_target_from_dict(t) for t in params.get("targets", [])]
        cfg = self.settings.targeting
        hits = targets_in_cone(
            player.x, player.y, player.facing, targets,
            tile_size=cfg.tile_size,
            reach=cfg.reach_px,
            cone_angle_degrees=cfg.cone_angle_degrees,
        )
        return {"targetIds": [t.id for t in hits]}

    async def _start_engagement(self, params: dict) -> dict:
        if self._session is not None and self._session.active:
            raise ValueError("An encounter is already in progress")

        player = _player_from_dict(params["player"], self.settings.combat.player_max_hp)
        targets = [_target_from_dict(t) for t in params.get("targets", [])]
        self._session = CombatSession(
            user_id=str(params["userId"]),
            player=player,
            answer_log=self.store,
            catalog=self.store,
            ledger=self.store,
            settings=self.settings,
            listener=self._on_event,
            rng=self._rng,
        )
        target = await self._session.engage(targets)
        return {
            "engaged": target is not None,
            "targetId": target.id if target else None,
            "session": _session_to_dict(self._session),
        }

    async def _submit_answer(self, params: dict) -> dict:
        if self._session is None:
            raise ValueError("No encounter in progress")
        resolved = await self._session.submit_answer(int(params["index"]))
        return {"resolved": resolved, "session": _session_to_dict(self._session)}

    async def _abort(self, params: dict) -> dict:
        aborted = self._session.abort() if self._session else False
        return {"aborted": aborted}

    async def _get_session(self, params: dict) -> dict:
        return _session_to_dict(self._session)
