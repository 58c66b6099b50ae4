"""Combat session state machine.

Idle -> Engaging -> AwaitingAnswer -> Resolving -> (AwaitingAnswer | Ending) -> Ended

One session drives one encounter between a player and a bound target. All
transitions run on the asyncio event loop; the contending triggers (timer
expiry, answer submission, completion of awaited collaborator calls) are
serialized by two rules:

- A round is *claimed* synchronously, before any await: the claim cancels
  the timer and moves the state out of AwaitingAnswer, so only the first of
  timer expiry and answer submission resolves a question.
- Every round carries a token. Late timer callbacks and late collaborator
  completions compare their captured token with the session's current one
  and discard themselves on mismatch.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, TypeVar, Union

from quizdungeon.config.settings import Settings
from quizdungeon.engine.damage import DamageModel
from quizdungeon.engine.difficulty import RoundBudget, scale
from quizdungeon.engine.entities import PlayerState, Target
from quizdungeon.engine.errors import EngagementError, InvalidAnswerError, MissingPrerequisiteError
from quizdungeon.engine.progression import experience_reward
from quizdungeon.engine.rating import RatingTracker
from quizdungeon.engine.selector import SelectedQuestion, select_question
from quizdungeon.engine.services import (
    ANSWER_COUNT,
    AnswerLog,
    CatalogQuestion,
    DamageFunction,
    ExperienceLedger,
    QuestionCatalog,
)
from quizdungeon.engine.targeting import find_engagement_target

log = logging.getLogger(__name__)

TIMEOUT_INDEX = -1

R = TypeVar("R")


class SessionState(str, Enum):
    IDLE = "idle"
    ENGAGING = "engaging"
    AWAITING_ANSWER = "awaiting_answer"
    RESOLVING = "resolving"
    ENDING = "ending"
    ENDED = "ended"


class EndReason(str, Enum):
    VICTORY = "victory"
    DEFEAT = "defeat"
    EXHAUSTED = "exhausted"  # no unused question left
    ABORTED = "aborted"
    ERROR = "error"  # catalog failed mid-encounter


@dataclass(frozen=True)
class QuestionPresented:
    question: SelectedQuestion
    round_number: int
    rating: int
    budget: RoundBudget


@dataclass(frozen=True)
class RoundResolved:
    question_id: int
    selected_index: int
    correct: bool
    timed_out: bool
    feedback: str
    damage: int
    player_hp: int
    target_hp: int
    rating: int
    logged: bool


@dataclass(frozen=True)
class Victory:
    reward: int


@dataclass(frozen=True)
class Defeat:
    player_hp: int = 0


@dataclass(frozen=True)
class SessionEnded:
    reason: EndReason


SessionEvent = Union[QuestionPresented, RoundResolved, Victory, Defeat, SessionEnded]
EventListener = Callable[[SessionEvent], None]


class CombatSession:
    """Drives one encounter: question rounds, damage, reward, teardown."""

    def __init__(
        self,
        user_id: str,
        player: PlayerState,
        answer_log: AnswerLog,
        catalog: QuestionCatalog,
        ledger: ExperienceLedger,
        damage: Optional[DamageFunction] = None,
        settings: Optional[Settings] = None,
        listener: Optional[EventListener] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.user_id = user_id
        self.player = player
        self.answer_log = answer_log
        self.catalog = catalog
        self.ledger = ledger
        self.settings = settings or Settings()
        self.damage = damage or DamageModel(self.settings.damage)
        self.tracker = RatingTracker(answer_log, start=self.settings.combat.default_rating)
        self.listener = listener
        self.rng = rng
        self.clock = clock

        self.state = SessionState.IDLE
        self.target: Optional[Target] = None
        self.question: Optional[SelectedQuestion] = None
        self.budget: Optional[RoundBudget] = None
        self.used_ids: set[int] = set()
        self.rating: Optional[int] = None
        self.round_number = 0
        self.end_reason: Optional[EndReason] = None
        self.reward: Optional[int] = None
        self.defeated = False

        self._token = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._deadline: Optional[float] = None
        self._question_started = 0.0
        self._pending: set[asyncio.Task] = set()

    # ── Public surface ──

    @property
    def active(self) -> bool:
        return self.state not in (SessionState.IDLE, SessionState.ENDED)

    def time_remaining(self) -> float:
        """Seconds left on the current question (0 when not awaiting)."""
        if self.state is not SessionState.AWAITING_ANSWER or self._deadline is None:
            return 0.0
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    async def engage(self, candidates: Iterable[Target]) -> Optional[Target]:
        """Start an encounter with the nearest target in the player's cone."""
        target = find_engagement_target(self.player, candidates, self.settings.targeting)
        if target is None:
            return None
        started = await self.start(target)
        return target if started and self.active else None

    async def start(self, target: Target) -> bool:
        """Bind ``target`` and present the first question.

        Returns False (and leaves nothing bound) if the rating or the
        catalog could not be read.
        """
        if self.state is not SessionState.IDLE:
            raise EngagementError(f"Session is {self.state.value}, cannot engage")
        if not target.alive:
            raise EngagementError(f"Target {target.id} is dead")
        if target.engaged:
            raise EngagementError(f"Target {target.id} is already engaged")

        self.state = SessionState.ENGAGING
        self.target = target
        target.engaged = True
        self.used_ids = set()
        token = self._token

        try:
            pool = await self._prerequisites(target)
        except MissingPrerequisiteError as e:
            log.warning("Cannot engage %s: %s", target.id, e)
            if self._current(token):
                target.engaged = False
                self.target = None
                self.rating = None
                self.state = SessionState.IDLE
            return False

        if not self._current(token):
            return False

        log.info(
            "Engaged %s (level %d, %s) with rating %d",
            target.id, target.level, target.subject, self.rating,
        )
        await self._next_round(token, pool=pool)
        return True

    async def submit_answer(self, index: int) -> bool:
        """Answer the current question. Returns False if nothing was resolved."""
        if index != TIMEOUT_INDEX and not 0 <= index < ANSWER_COUNT:
            raise InvalidAnswerError(f"Answer index must be 0-{ANSWER_COUNT - 1}, got {index}")
        token = self._claim_round()
        if token is None:
            return False
        await self._resolve(index, token)
        return True

    def abort(self) -> bool:
        """End the encounter immediately without reward."""
        if not self.active:
            return False
        self._teardown(EndReason.ABORTED)
        return True

    async def settle(self) -> None:
        """Wait until no follow-up task (feedback delay, timeout) is pending."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _prerequisites(self, target: Target) -> list[CatalogQuestion]:
        try:
            self.rating = await self._call(self.tracker.rating(self.user_id, target.subject))
        except Exception as e:
            raise MissingPrerequisiteError(f"rating for {target.subject} unavailable ({e})") from e
        try:
            return await self._call(
                self.catalog.questions_for_subject(target.subject, self.rating, self.user_id)
            )
        except Exception as e:
            raise MissingPrerequisiteError(f"question catalog unavailable ({e})") from e

    # ── Rounds ──

    async def _next_round(self, token: int, pool: Optional[list[CatalogQuestion]] = None) -> None:
        if not self._current(token):
            return
        target = self.target
        if not target.alive:
            self._end(EndReason.VICTORY)
            return
        if self.player.hp <= 0:
            self._end(EndReason.DEFEAT)
            return

        if pool is None:
            try:
                pool = await self._call(
                    self.catalog.questions_for_subject(target.subject, self.rating, self.user_id)
                )
            except Exception as e:
                log.warning("Question pool for %s unavailable: %s", target.subject, e)
                if self._current(token):
                    self._end(EndReason.ERROR)
                return
            if not self._current(token):
                return

        question = select_question(pool, target.level, self.used_ids, self.rng)
        if question is None:
            log.info("No unused %s question left for %s", target.subject, target.id)
            self._end(EndReason.EXHAUSTED)
            return

        budget = scale(self.rating, target.level, self.settings.combat)
        self.used_ids.add(question.id)
        self.question = question
        self.budget = budget
        self.round_number += 1
        self._token += 1
        self.state = SessionState.AWAITING_ANSWER

        loop = asyncio.get_running_loop()
        self._question_started = self.clock()
        self._deadline = loop.time() + budget.time_limit_seconds
        self._timer = loop.call_later(
            budget.time_limit_seconds, self._on_timer_expired, self._token,
        )
        log.debug(
            "Round %d: question %s, %ds budget",
            self.round_number, question.id, budget.time_limit_seconds,
        )
        self._emit(QuestionPresented(
            question=question,
            round_number=self.round_number,
            rating=self.rating,
            budget=budget,
        ))

    def _claim_round(self) -> Optional[int]:
        # Must stay synchronous: this is what makes resolution at-most-once.
        if self.state is not SessionState.AWAITING_ANSWER:
            return None
        self._cancel_timer()
        self.state = SessionState.RESOLVING
        return self._token

    def _on_timer_expired(self, token: int) -> None:
        if token != self._token:
            return
        self._timer = None
        claimed = self._claim_round()
        if claimed is None:
            return
        self._spawn(self._resolve(TIMEOUT_INDEX, claimed))

    async def _resolve(self, index: int, token: int) -> None:
        question = self.question
        target = self.target
        timed_out = index == TIMEOUT_INDEX
        correct = not timed_out and index == question.correct_index
        elapsed_ms = int((self.clock() - self._question_started) * 1000)

        logged = False
        try:
            logged = bool(await self._call(self.answer_log.append_outcome(
                self.user_id, question.id, index, correct, elapsed_ms, timed_out,
            )))
        except Exception as e:
            log.warning("Failed to record answer for question %s: %s", question.id, e)
        if not self._current(token):
            return

        if logged:
            try:
                self.rating = await self._call(self.tracker.rating(self.user_id, target.subject))
            except Exception as e:
                log.warning("Rating refresh failed, keeping %s: %s", self.rating, e)
            if not self._current(token):
                return
        else:
            log.warning("Answer to question %s not recorded; rating stays %s", question.id, self.rating)

        rating = self.rating
        if correct:
            damage = self.damage.damage_dealt(rating, target.level)
            target.take_damage(damage)
            feedback = f"Correct! {damage} damage!"
        else:
            damage = self.damage.damage_taken(rating, target.level)
            self.player.apply_damage(damage)
            prefix = "Time's up!" if timed_out else "Wrong!"
            feedback = f"{prefix} Correct answer: {question.correct_answer} (-{damage} HP)"

        self._emit(RoundResolved(
            question_id=question.id,
            selected_index=index,
            correct=correct,
            timed_out=timed_out,
            feedback=feedback,
            damage=damage,
            player_hp=self.player.hp,
            target_hp=target.hp,
            rating=rating,
            logged=logged,
        ))
        self._spawn(self._after_feedback(token))

    async def _after_feedback(self, token: int) -> None:
        await asyncio.sleep(self.settings.combat.feedback_delay_seconds)
        if not self._current(token):
            return
        # Health may also have been changed by the host between ticks.
        if not self.target.alive:
            self._end(EndReason.VICTORY)
        elif self.player.hp <= 0:
            self._end(EndReason.DEFEAT)
        else:
            await self._next_round(token)

    # ── Ending ──

    def _end(self, reason: EndReason) -> None:
        self.state = SessionState.ENDING
        self._cancel_timer()
        target = self.target
        if reason is EndReason.VICTORY:
            reward = experience_reward(target.level)
            self.reward = reward
            self._emit(Victory(reward=reward))
            self._spawn(self._grant_reward(reward, target))
        elif reason is EndReason.DEFEAT:
            self.defeated = True
            self._emit(Defeat(player_hp=self.player.hp))
        self._teardown(reason)

    async def _grant_reward(self, reward: int, target: Target) -> None:
        # Runs after teardown; only reports, never touches session state.
        context = {"enemy_level": target.level, "subject": target.subject, "target_id": target.id}
        try:
            granted = await self._call(
                self.ledger.grant_experience(self.user_id, reward, "enemy_defeated", context)
            )
        except Exception as e:
            log.warning("Failed to grant %d XP to %s: %s", reward, self.user_id, e)
            return
        if not granted:
            log.warning("Ledger declined %d XP for %s", reward, self.user_id)

    def _teardown(self, reason: EndReason) -> None:
        if self.state is SessionState.ENDED:
            return
        self._cancel_timer()
        self._token += 1
        if self.target is not None:
            self.target.engaged = False
        self.target = None
        self.question = None
        self.used_ids = set()
        self.end_reason = reason
        self.state = SessionState.ENDED
        log.info("Session for %s ended: %s", self.user_id, reason.value)
        self._emit(SessionEnded(reason=reason))

    # ── Helpers ──

    def _current(self, token: int) -> bool:
        return token == self._token and self.active

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._deadline = None

    async def _call(self, awaitable: Awaitable[R]) -> R:
        return await asyncio.wait_for(awaitable, timeout=self.settings.combat.io_timeout_seconds)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Combat task failed", exc_info=task.exception())

    def _emit(self, event: SessionEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception:
            log.exception("Session listener failed on %s", type(event).__name__)
