"""End-to-end conference flow against the simulated provider.

Wires the real router, tracker, manager and sequencer together the same way the
application lifespan does, then drives calls through the simulated provider.
"""

import pytest

from confbridge.services.conference import ConferenceManager, ConferenceSequencer, SequenceOutcome
from confbridge.services.event_router import EventRouter
from confbridge.services.readiness import ReadinessTracker
from confbridge.services.telephony.base import ConnectionState


class TestConferenceFlow:
    async def _start(self, provider, rule):
        tracker = ReadinessTracker(
            route_point_terminals=[rule.route_point_terminal],
            route_point_addresses=[rule.route_point_dn],
        )
        sequencer = ConferenceSequencer(provider, poll_interval=0, poll_attempts=10)
        manager = ConferenceManager(sequencer=sequencer, rules=[rule])
        router = EventRouter(provider, tracker, manager)
        await provider.add_observer(router)
        await provider.connect()
        return tracker, manager

    @pytest.mark.asyncio
    async def test_readiness_after_connect(self, make_provider, rule):
        provider = make_provider()
        tracker, _ = await self._start(provider, rule)

        assert await tracker.provider.wait(timeout=1)
        assert tracker.route_point_terminal.is_set
        assert tracker.route_point_address.is_set
        assert tracker.terminal.is_set
        assert tracker.address.is_set
        assert not tracker.call_active.is_set
        assert (await provider.get_terminal("CTIRoutePoint88")).registered

    @pytest.mark.asyncio
    async def test_offer_on_route_point_merges_second_party(self, make_provider, rule):
        provider = make_provider()
        _, manager = await self._start(provider, rule)
        existing = await provider.establish_call("5017", "0799000000")

        trigger = await provider.offer_call("0711223344", "885016")
        await manager.wait_idle()

        [record] = manager.recent_outcomes
        assert record.call_id == trigger.call_id
        assert record.outcome == SequenceOutcome.MERGED
        assert record.join_polls == 1
        assert [c.address.name for c in trigger.connections] == ["0711223344"]

        conference = next(call for call in provider.calls if call.call_id == record.conference_call_id)
        assert conference.conference_enabled
        assert sorted(c.address.name for c in conference.connections) == ["0799000000", "4030", "5016", "5017"]
        assert all(c.state == ConnectionState.CONNECTED for c in conference.connections)
        assert existing.invalid

    @pytest.mark.asyncio
    async def test_offer_without_second_party_call_connects_directly(self, make_provider, rule):
        provider = make_provider()
        _, manager = await self._start(provider, rule)

        await provider.offer_call("0711223344", "885016")
        await manager.wait_idle()

        [record] = manager.recent_outcomes
        assert record.outcome == SequenceOutcome.CONNECTED_DIRECT
        conference = next(call for call in provider.calls if call.call_id == record.conference_call_id)
        assert sorted(c.address.name for c in conference.connections) == ["4030", "5016", "5017"]

    @pytest.mark.asyncio
    async def test_destination_never_answers(self, make_provider, rule):
        provider = make_provider(auto_answer=())
        _, manager = await self._start(provider, rule)
        await provider.establish_call("5017", "0799000000")

        await provider.offer_call("0711223344", "885016")
        await manager.wait_idle()

        [record] = manager.recent_outcomes
        assert record.outcome == SequenceOutcome.JOIN_TIMEOUT
        assert record.join_polls == 10
        # Partially built call is left in place, second party untouched
        conference = next(call for call in provider.calls if call.call_id == record.conference_call_id)
        assert sorted(c.address.name for c in conference.connections) == ["4030", "5016"]
        assert len((await provider.get_address("5017")).connections) == 1

    @pytest.mark.asyncio
    async def test_offer_on_other_dn_issues_no_commands(self, make_provider, rule):
        provider = make_provider()
        _, manager = await self._start(provider, rule)

        call = await provider.offer_call("0711223344", "5016")
        await manager.wait_idle()

        assert manager.recent_outcomes == []
        assert provider.calls == [call]
        assert {c.state for c in call.connections} == {ConnectionState.CONNECTED, ConnectionState.OFFERED}
