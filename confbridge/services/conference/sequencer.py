"""Conference sequencer: merges two fixed parties onto a call offered at a route point.

Sequence for one triggering call:
    1. DISCONNECTING: drop the trigger call's leg at the route-point DN
    2. CREATING: create a new call and enable conferencing on it
    3. CONNECTING_FIRST: first party dials the destination from the new call
    4. AWAITING_FIRST_JOIN: poll the new call until the destination is connected;
       abort (no cleanup) when the poll budget runs out
    5. MERGING_SECOND: conference the second party's existing call into the new
       call; on failure, or when the second party has no call, fall through to
    6. CONNECTING_SECOND_DIRECT: second party dials the destination directly

The sequencer never raises for call-control failures: the outcome is recorded on
the ConferenceSession. Cancellation is honoured at every await and re-raised.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from confbridge.services.conference.models import (
    ConferenceSession,
    SequenceOutcome,
    SequenceState,
)
from confbridge.services.telephony.base import (
    Address,
    BaseCallControlProvider,
    Call,
    ConnectionState,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_POLL_ATTEMPTS = 10


class ConferenceSequencer:
    """Runs the conference workflow against a call-control provider.

    Usage::

        sequencer = ConferenceSequencer(provider, poll_interval=1.0, poll_attempts=10)
        session = await sequencer.run(ConferenceSession(trigger_call=call, rule=rule))
        session.outcome  # SequenceOutcome.MERGED, ...
    """

    def __init__(
        self,
        provider: BaseCallControlProvider,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        poll_attempts: int = DEFAULT_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")
        self._provider = provider
        self._poll_interval = poll_interval
        self._poll_attempts = poll_attempts
        self._sleep = sleep

    async def run(self, session: ConferenceSession) -> ConferenceSession:
        rule = session.rule
        log_extra = _log_extra(session)
        logger.info("Initiating conference sequence for DN %s", rule.route_point_dn, extra=log_extra)

        try:
            first_terminal = await self._provider.get_terminal(rule.first_party.terminal)
            first_address = await self._provider.get_address(rule.first_party.address)
            second_terminal = await self._provider.get_terminal(rule.second_party.terminal)
            second_address = await self._provider.get_address(rule.second_party.address)
            logger.info(
                "Initial state of DN %s: in_service=%s, connections=%d",
                second_address.name,
                second_address.in_service,
                len(second_address.connections),
                extra=log_extra,
            )

            session.transition(SequenceState.DISCONNECTING)
            await self._disconnect_route_point(session)

            session.transition(SequenceState.CREATING)
            new_call = await self._provider.create_call()
            await new_call.set_conference_enable(True)
            session.conference_call = new_call
            logger.info("Conference call %s created", new_call.call_id, extra=log_extra)

            session.transition(SequenceState.CONNECTING_FIRST)
            await new_call.connect(first_terminal, first_address, rule.destination)
            logger.info(
                "DN %s dialing %s on call %s",
                first_address.name,
                rule.destination,
                new_call.call_id,
                extra=log_extra,
            )

            session.transition(SequenceState.AWAITING_FIRST_JOIN)
            if not await self._await_join(session, new_call):
                logger.warning(
                    "DN %s did not join within %d polls, aborting merge",
                    rule.destination,
                    self._poll_attempts,
                    extra=log_extra,
                )
                session.finish(SequenceOutcome.JOIN_TIMEOUT, SequenceState.ABORTED)
                return session

            existing = self._existing_call(second_address)
        except asyncio.CancelledError:
            logger.info("Conference sequence cancelled in state %s", session.state.value, extra=log_extra)
            session.finish(SequenceOutcome.CANCELLED, SequenceState.ABORTED)
            raise
        except Exception as exc:
            logger.error(
                "Conference sequence failed in state %s: %s",
                session.state.value,
                exc,
                exc_info=True,
                extra=log_extra,
            )
            session.finish(SequenceOutcome.FAILED, SequenceState.FAILED, error=str(exc))
            return session

        if existing is not None:
            session.transition(SequenceState.MERGING_SECOND)
            try:
                logger.info(
                    "Merging DN %s call %s into %s",
                    second_address.name,
                    existing.call_id,
                    new_call.call_id,
                    extra=log_extra,
                )
                await new_call.conference(existing)
                logger.info("DN %s merged", second_address.name, extra=log_extra)
                session.finish(SequenceOutcome.MERGED, SequenceState.DONE)
                return session
            except Exception as exc:
                logger.error(
                    "Failed to merge DN %s call: %s",
                    second_address.name,
                    exc,
                    exc_info=True,
                    extra=log_extra,
                )
        else:
            logger.info("No existing call for DN %s to merge", second_address.name, extra=log_extra)

        session.transition(SequenceState.CONNECTING_SECOND_DIRECT)
        try:
            await new_call.connect(second_terminal, second_address, rule.destination)
        except Exception as exc:
            logger.error(
                "Failed to connect DN %s to call %s: %s",
                second_address.name,
                new_call.call_id,
                exc,
                exc_info=True,
                extra=log_extra,
            )
            session.finish(SequenceOutcome.SECOND_PARTY_FAILED, SequenceState.DONE, error=str(exc))
            return session

        logger.info("DN %s connected directly", second_address.name, extra=log_extra)
        session.finish(SequenceOutcome.CONNECTED_DIRECT, SequenceState.DONE)
        return session

    async def _disconnect_route_point(self, session: ConferenceSession) -> None:
        dn = session.rule.route_point_dn
        disconnected = 0
        for conn in session.trigger_call.connections:
            if conn.address.name == dn:
                await conn.disconnect()
                disconnected += 1

        if disconnected:
            logger.info("Disconnected %d leg(s) from route point %s", disconnected, dn, extra=_log_extra(session))
        else:
            logger.info("No leg at route point %s to disconnect", dn, extra=_log_extra(session))

    async def _await_join(self, session: ConferenceSession, call: Call) -> bool:
        """Poll ``call`` until the destination is connected. False when the budget runs out."""
        destination = session.rule.destination
        for attempt in range(1, self._poll_attempts + 1):
            await self._sleep(self._poll_interval)
            session.join_polls = attempt
            for conn in call.connections:
                if conn.address.name == destination and conn.state == ConnectionState.CONNECTED:
                    logger.info(
                        "DN %s joined call %s after %d poll(s)",
                        destination,
                        call.call_id,
                        attempt,
                        extra=_log_extra(session),
                    )
                    return True
        return False

    @staticmethod
    def _existing_call(address: Address) -> Call | None:
        connections = address.connections
        if connections:
            return connections[0].call
        return None


def _log_extra(session: ConferenceSession) -> dict[str, str]:
    return {"call_id": session.call_id, "rule": session.rule.name}
