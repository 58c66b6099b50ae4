"""Tests for the combat session state machine."""

from __future__ import annotations

import asyncio

import pytest

from quizdungeon.config.settings import CombatConfig, Settings
from quizdungeon.engine.entities import Target
from quizdungeon.engine.errors import EngagementError, InvalidAnswerError
from quizdungeon.engine.rating import Outcome, exposed_rating
from quizdungeon.engine.session import (
    TIMEOUT_INDEX,
    CombatSession,
    Defeat,
    EndReason,
    QuestionPresented,
    RoundResolved,
    SessionEnded,
    SessionState,
    Victory,
)

from conftest import FakeServices


def _of(events, kind):
    return [e for e in events if isinstance(e, kind)]


async def _wait_ended(session, timeout: float = 2.0) -> None:
    async def _poll():
        while session.active:
            await asyncio.sleep(0.005)
        await session.settle()

    await asyncio.wait_for(_poll(), timeout)


class TestEngagement:
    @pytest.mark.asyncio
    async def test_default_rating_scenario(self, session, target, events):
        assert await session.start(target) is True
        assert session.state is SessionState.AWAITING_ANSWER
        assert session.rating == 5

        presented = _of(events, QuestionPresented)
        assert len(presented) == 1
        budget = presented[0].budget
        assert budget.question_level == 6
        assert budget.level_difference == -1
        assert budget.time_limit_seconds == 14
        assert target.engaged
        session.abort()

    @pytest.mark.asyncio
    async def test_engage_picks_target_in_front(self, session, events):
        behind = Target(id="behind", x=-32, y=0, subject="math")
        dead = Target(id="dead", x=16, y=0, subject="math", hp=0)
        front = Target(id="front", x=32, y=0, subject="math")

        engaged = await session.engage([behind, dead, front])
        assert engaged is front
        assert session.target is front
        session.abort()

    @pytest.mark.asyncio
    async def test_engage_nothing_in_reach(self, session):
        far = Target(id="far", x=320, y=0, subject="math")
        assert await session.engage([far]) is None
        assert session.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_rating_unavailable_aborts_start(self, session, services, target, events):
        services.fail_history = True
        assert await session.start(target) is False
        assert session.state is SessionState.IDLE
        assert session.target is None
        assert session._timer is None
        assert not target.engaged
        assert events == []

    @pytest.mark.asyncio
    async def test_catalog_unavailable_aborts_start(self, session, services, target):
        services.fail_catalog = True
        assert await session.start(target) is False
        assert session.state is SessionState.IDLE
        assert session._timer is None
        assert not target.engaged

    @pytest.mark.asyncio
    async def test_dead_target_rejected(self, session):
        corpse = Target(id="corpse", x=32, y=0, subject="math", hp=0)
        with pytest.raises(EngagementError, match="dead"):
            await session.start(corpse)

    @pytest.mark.asyncio
    async def test_engaged_target_rejected(self, session, target):
        target.engaged = True
        with pytest.raises(EngagementError, match="already engaged"):
            await session.start(target)

    @pytest.mark.asyncio
    async def test_second_start_rejected(self, session, target):
        await session.start(target)
        other = Target(id="other", x=32, y=0, subject="math")
        with pytest.raises(EngagementError):
            await session.start(other)
        session.abort()

    @pytest.mark.asyncio
    async def test_empty_pool_ends_immediately(self, player, settings, target, events):
        services = FakeServices([])
        session = CombatSession(
            "u1", player, services, services, services,
            settings=settings, listener=events.append,
        )
        assert await session.start(target) is True
        assert session.state is SessionState.ENDED
        assert session.end_reason is EndReason.EXHAUSTED
        assert _of(events, QuestionPresented) == []

    @pytest.mark.asyncio
    async def test_engage_with_empty_pool_reports_nothing_engaged(self, player, settings, target):
        services = FakeServices([])
        session = CombatSession("u1", player, services, services, services, settings=settings)
        assert await session.engage([target]) is None
        assert session.end_reason is EndReason.EXHAUSTED
        assert not target.engaged

    @pytest.mark.asyncio
    async def test_configured_default_rating(self, services, player, target, events, tmp_path):
        settings = Settings(
            combat=CombatConfig(default_rating=7, feedback_delay_seconds=0),
            data_dir=tmp_path,
        )
        session = CombatSession(
            "u1", player, services, services, services,
            settings=settings, listener=events.append,
        )
        await session.start(target)
        assert session.rating == 7
        assert _of(events, QuestionPresented)[0].budget.time_limit_seconds == 12
        session.abort()


class TestRounds:
    @pytest.mark.asyncio
    async def test_correct_answer_damages_target(self, session, services, target, events):
        await session.start(target)
        assert await session.submit_answer(0) is True

        resolved = _of(events, RoundResolved)
        assert len(resolved) == 1
        r = resolved[0]
        assert r.correct and not r.timed_out and r.logged
        # one correct answer from 5.0 folds to 6.7 -> 7
        assert r.rating == 7
        assert r.damage == 14
        assert target.hp == 16
        assert services.appended == [("u1", 1, 0, True, False)]

    @pytest.mark.asyncio
    async def test_wrong_answer_damages_player(self, session, target, player, events):
        await session.start(target)
        await session.submit_answer(2)

        r = _of(events, RoundResolved)[0]
        assert not r.correct
        assert r.rating == 4
        assert r.damage == 12
        assert player.hp == 88
        assert "Wrong!" in r.feedback
        assert "right 1" in r.feedback
        session.abort()

    @pytest.mark.asyncio
    async def test_next_question_uses_fresh_rating(self, session, target, events):
        await session.start(target)
        await session.submit_answer(0)
        await session.settle()

        presented = _of(events, QuestionPresented)
        assert len(presented) == 2
        assert presented[1].question.id != presented[0].question.id
        assert presented[1].budget.question_level == 4
        assert presented[1].budget.time_limit_seconds == 12
        assert session.state is SessionState.AWAITING_ANSWER
        session.abort()

    @pytest.mark.asyncio
    async def test_questions_never_repeat(self, session, target, events):
        target.hp = target.max_hp = 1000
        await session.start(target)
        for _ in range(6):
            await session.submit_answer(0)
            await session.settle()

        ids = [e.question.id for e in _of(events, QuestionPresented)]
        assert sorted(ids) == [1, 2, 3, 4, 5, 6]
        assert session.end_reason is EndReason.EXHAUSTED

    @pytest.mark.asyncio
    async def test_invalid_index_rejected(self, session, target):
        await session.start(target)
        with pytest.raises(InvalidAnswerError):
            await session.submit_answer(4)
        with pytest.raises(ValueError):
            await session.submit_answer(-7)
        assert session.state is SessionState.AWAITING_ANSWER
        assert session._timer is not None
        session.abort()

    @pytest.mark.asyncio
    async def test_submit_when_idle_is_noop(self, session):
        assert await session.submit_answer(0) is False

    @pytest.mark.asyncio
    async def test_logging_failure_still_resolves(self, session, services, target, events):
        services.fail_append = True
        await session.start(target)
        assert await session.submit_answer(0) is True

        r = _of(events, RoundResolved)[0]
        assert not r.logged
        assert r.rating == 5  # stale rating kept
        assert r.damage == 10
        assert target.hp == 20

        await session.settle()
        assert len(_of(events, QuestionPresented)) == 2
        session.abort()


class TestTimerRaces:
    @pytest.mark.asyncio
    async def test_timer_then_answer_resolves_once(self, session, services, target, player, events):
        await session.start(target)
        token = session._token

        session._on_timer_expired(token)
        assert session.state is SessionState.RESOLVING
        assert await session.submit_answer(0) is False
        await session.settle()

        resolved = _of(events, RoundResolved)
        assert len(resolved) == 1
        assert resolved[0].timed_out
        assert resolved[0].selected_index == TIMEOUT_INDEX
        assert len(services.appended) == 1
        assert player.hp == 100 - resolved[0].damage
        assert target.hp == 30
        session.abort()

    @pytest.mark.asyncio
    async def test_late_timer_after_answer_is_noop(self, session, services, target, events):
        await session.start(target)
        token = session._token

        await session.submit_answer(0)
        assert session._timer is None
        session._on_timer_expired(token)
        await session.settle()

        assert len(_of(events, RoundResolved)) == 1
        assert len(services.appended) == 1
        session.abort()

    @pytest.mark.asyncio
    async def test_concurrent_submissions(self, session, services, target, events):
        await session.start(target)
        results = await asyncio.gather(session.submit_answer(0), session.submit_answer(1))
        assert sorted(results) == [False, True]
        assert len(_of(events, RoundResolved)) == 1
        assert len(services.appended) == 1
        session.abort()

    @pytest.mark.asyncio
    async def test_real_timeouts_until_defeat(self, services, player, target, events, tmp_path):
        settings = Settings(
            combat=CombatConfig(
                feedback_delay_seconds=0,
                time_base_seconds=0,
                time_min_seconds=0,
                time_max_seconds=0,
            ),
            data_dir=tmp_path,
        )
        player.set_hp(20)
        session = CombatSession(
            "u1", player, services, services, services,
            settings=settings, listener=events.append,
        )
        await session.start(target)
        await _wait_ended(session)

        resolved = _of(events, RoundResolved)
        assert resolved and all(r.timed_out for r in resolved)
        assert len(_of(events, Defeat)) == 1
        assert session.end_reason is EndReason.DEFEAT
        assert player.hp == 0


class TestEnding:
    @pytest.mark.asyncio
    async def test_victory_grants_reward(self, session, services, events):
        history = [Outcome.CORRECT] * 12
        services.seed_history("u1", "math", history)
        assert exposed_rating(history) == 10
        weak = Target(id="rat", x=32, y=0, subject="math", level=1, hp=1, max_hp=1)

        await session.start(weak)
        await session.submit_answer(0)
        await session.settle()

        victory = _of(events, Victory)
        assert victory == [Victory(reward=50)]
        assert services.grants[0][:3] == ("u1", 50, "enemy_defeated")
        assert services.grants[0][3]["enemy_level"] == 1
        assert session.end_reason is EndReason.VICTORY
        assert session.reward == 50
        assert isinstance(events[-1], SessionEnded)
        assert not weak.engaged
        assert session.target is None

    @pytest.mark.asyncio
    async def test_reward_failure_still_ends(self, session, services, events):
        services.fail_grant = True
        weak = Target(id="rat", x=32, y=0, subject="math", level=1, hp=1, max_hp=1)

        await session.start(weak)
        await session.submit_answer(0)
        await session.settle()

        assert _of(events, Victory) == [Victory(reward=50)]
        assert session.state is SessionState.ENDED
        assert session.end_reason is EndReason.VICTORY
        assert services.grants == []

    @pytest.mark.asyncio
    async def test_pending_reward_does_not_hold_session_open(self, session, services, events):
        services.grant_gate = asyncio.Event()
        weak = Target(id="rat", x=32, y=0, subject="math", level=1, hp=1, max_hp=1)

        await session.start(weak)
        await session.submit_answer(0)

        async def _until_inactive():
            while session.active:
                await asyncio.sleep(0)

        await asyncio.wait_for(_until_inactive(), 1.0)

        # grant still waiting on the ledger, encounter already torn down
        assert session.state is SessionState.ENDED
        assert session.end_reason is EndReason.VICTORY
        assert not weak.engaged
        assert session.target is None
        assert services.grants == []
        assert session._pending
        seen = list(events)

        services.grant_gate.set()
        await session.settle()

        assert services.grants[0][:2] == ("u1", 50)
        assert events == seen
        assert session.state is SessionState.ENDED

    @pytest.mark.asyncio
    async def test_defeat_signal(self, session, services, player, target, events):
        player.set_hp(5)
        await session.start(target)
        await session.submit_answer(1)
        await session.settle()

        assert player.hp == 0
        assert session.defeated
        assert session.end_reason is EndReason.DEFEAT
        assert _of(events, Victory) == []
        assert services.grants == []
        kinds = [type(e) for e in events[-3:]]
        assert kinds == [RoundResolved, Defeat, SessionEnded]

    @pytest.mark.asyncio
    async def test_external_health_drop_between_rounds(self, services, player, target, events, tmp_path):
        settings = Settings(
            combat=CombatConfig(feedback_delay_seconds=0.05),
            data_dir=tmp_path,
        )
        session = CombatSession(
            "u1", player, services, services, services,
            settings=settings, listener=events.append,
        )
        await session.start(target)
        await session.submit_answer(0)
        player.set_hp(0)
        await _wait_ended(session)
        assert session.end_reason is EndReason.DEFEAT

    @pytest.mark.asyncio
    async def test_catalog_failure_mid_encounter(self, session, services, target):
        await session.start(target)
        services.fail_catalog = True
        await session.submit_answer(0)
        await session.settle()
        assert session.end_reason is EndReason.ERROR
        assert not target.engaged

    @pytest.mark.asyncio
    async def test_abort_cancels_timer(self, session, target, events):
        await session.start(target)
        assert session._timer is not None

        assert session.abort() is True
        assert session._timer is None
        assert session.state is SessionState.ENDED
        assert session.end_reason is EndReason.ABORTED
        assert not target.engaged
        assert session.used_ids == set()
        assert await session.submit_answer(0) is False
        assert session.abort() is False

    @pytest.mark.asyncio
    async def test_inflight_write_discarded_after_abort(self, session, services, target, events):
        services.append_gate = asyncio.Event()
        await session.start(target)

        task = asyncio.ensure_future(session.submit_answer(0))
        await asyncio.sleep(0)
        assert session.state is SessionState.RESOLVING

        session.abort()
        services.append_gate.set()
        assert await task is True
        await session.settle()

        assert len(services.appended) == 1  # the write itself completed
        assert _of(events, RoundResolved) == []
        assert target.hp == 30
        assert session.state is SessionState.ENDED
