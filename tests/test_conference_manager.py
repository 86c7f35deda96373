"""Tests for the conference manager: rule matching and per-call sequence admission."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from confbridge.services.conference.manager import ConferenceManager
from confbridge.services.conference.models import (
    ConferenceRule,
    SequenceOutcome,
    SequenceState,
)


def _call(call_id):
    call = MagicMock()
    call.call_id = call_id
    return call


def _completing_sequencer(outcome=SequenceOutcome.MERGED):
    async def _run(session):
        session.finish(outcome, SequenceState.DONE)
        return session

    sequencer = MagicMock()
    sequencer.run = AsyncMock(side_effect=_run)
    return sequencer


def _blocking_sequencer(release: asyncio.Event):
    async def _run(session):
        session.transition(SequenceState.AWAITING_FIRST_JOIN)
        await release.wait()
        session.finish(SequenceOutcome.MERGED, SequenceState.DONE)
        return session

    sequencer = MagicMock()
    sequencer.run = AsyncMock(side_effect=_run)
    return sequencer


class TestRuleMatching:
    def test_match_by_route_point_dn(self, rule):
        mgr = ConferenceManager(sequencer=MagicMock(), rules=[rule])
        assert mgr.match("885016") is rule
        assert mgr.match("5016") is None

    def test_duplicate_dn_keeps_first_rule(self, rule):
        other = rule.model_copy(update={"name": "shadowed"})
        mgr = ConferenceManager(sequencer=MagicMock(), rules=[rule, other])
        assert mgr.match("885016").name == "route-point-885016"
        assert len(mgr.rules) == 1

    def test_multiple_route_points(self, rule):
        second = ConferenceRule(
            name="route-point-885017",
            route_point_dn="885017",
            route_point_terminal="CTIRoutePoint89",
            first_party=rule.first_party,
            second_party=rule.second_party,
            destination="4031",
        )
        mgr = ConferenceManager(sequencer=MagicMock(), rules=[rule, second])
        assert mgr.match("885017") is second


class TestConferenceManager:
    @pytest.mark.asyncio
    async def test_start_runs_sequence_and_records_outcome(self, rule):
        sequencer = _completing_sequencer()
        mgr = ConferenceManager(sequencer=sequencer, rules=[rule])

        task = mgr.start(_call("call-1"), rule)
        assert mgr.active_call_ids == ["call-1"]
        session = await task

        assert session.outcome == SequenceOutcome.MERGED
        assert mgr.active_call_ids == []
        [record] = mgr.recent_outcomes
        assert record.call_id == "call-1"
        assert record.rule == "route-point-885016"
        assert record.outcome == SequenceOutcome.MERGED

    @pytest.mark.asyncio
    async def test_duplicate_offer_for_same_call_is_rejected(self, rule):
        release = asyncio.Event()
        sequencer = _blocking_sequencer(release)
        mgr = ConferenceManager(sequencer=sequencer, rules=[rule])
        call = _call("call-1")

        first = mgr.start(call, rule)
        assert mgr.start(call, rule) is None

        release.set()
        await first
        assert sequencer.run.await_count == 1

    @pytest.mark.asyncio
    async def test_different_calls_run_independently(self, rule):
        release = asyncio.Event()
        mgr = ConferenceManager(sequencer=_blocking_sequencer(release), rules=[rule])

        mgr.start(_call("call-1"), rule)
        mgr.start(_call("call-2"), rule)
        assert sorted(mgr.active_call_ids) == ["call-1", "call-2"]

        release.set()
        await mgr.wait_idle()
        assert mgr.active_call_ids == []
        assert len(mgr.recent_outcomes) == 2

    @pytest.mark.asyncio
    async def test_same_call_can_start_again_after_finishing(self, rule):
        mgr = ConferenceManager(sequencer=_completing_sequencer(), rules=[rule])
        call = _call("call-1")

        await mgr.start(call, rule)
        second = mgr.start(call, rule)

        assert second is not None
        await second

    @pytest.mark.asyncio
    async def test_cancel_in_flight_sequence(self, rule):
        mgr = ConferenceManager(sequencer=_blocking_sequencer(asyncio.Event()), rules=[rule])
        task = mgr.start(_call("call-1"), rule)
        await asyncio.sleep(0)

        assert mgr.cancel("call-1") is True
        await task

        assert mgr.active_call_ids == []
        assert mgr.recent_outcomes[0].outcome == SequenceOutcome.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_before_sequence_starts(self, rule):
        mgr = ConferenceManager(sequencer=_completing_sequencer(), rules=[rule])
        task = mgr.start(_call("call-1"), rule)

        assert mgr.cancel("call-1") is True
        with pytest.raises(asyncio.CancelledError):
            await task

        assert mgr.active_call_ids == []
        assert mgr.recent_outcomes[0].outcome == SequenceOutcome.CANCELLED

    def test_cancel_unknown_call(self, rule):
        mgr = ConferenceManager(sequencer=MagicMock(), rules=[rule])
        assert mgr.cancel("nope") is False

    @pytest.mark.asyncio
    async def test_crashing_sequencer_is_recorded_as_failed(self, rule):
        sequencer = MagicMock()
        sequencer.run = AsyncMock(side_effect=RuntimeError("boom"))
        mgr = ConferenceManager(sequencer=sequencer, rules=[rule])

        session = await mgr.start(_call("call-1"), rule)

        assert session.outcome == SequenceOutcome.FAILED
        assert mgr.recent_outcomes[0].error == "boom"

    @pytest.mark.asyncio
    async def test_teardown_all_cancels_everything(self, rule):
        mgr = ConferenceManager(sequencer=_blocking_sequencer(asyncio.Event()), rules=[rule])
        mgr.start(_call("call-1"), rule)
        mgr.start(_call("call-2"), rule)
        await asyncio.sleep(0)

        await mgr.teardown_all()

        assert mgr.active_call_ids == []
        assert {r.outcome for r in mgr.recent_outcomes} == {SequenceOutcome.CANCELLED}

    @pytest.mark.asyncio
    async def test_teardown_with_nothing_running(self, rule):
        mgr = ConferenceManager(sequencer=MagicMock(), rules=[rule])
        await mgr.teardown_all()

    @pytest.mark.asyncio
    async def test_recent_outcomes_are_bounded(self, rule):
        mgr = ConferenceManager(sequencer=_completing_sequencer(), rules=[rule], recent_limit=2)
        for i in range(3):
            await mgr.start(_call(f"call-{i}"), rule)
        assert [r.call_id for r in mgr.recent_outcomes] == ["call-2", "call-1"]
