"""Conference manager: matches offered calls to rules and owns sequencer tasks.

Handles the lifecycle of conference sequences:
- match: Finds the rule for a route-point DN
- start: Spawns a sequencer task, at most one per triggering call id
- cancel: Cancels the in-flight sequence for a call
- teardown_all: Bulk cancellation for shutdown

Sequences run as asyncio tasks so that the event delivery path never waits on
the join poll.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Iterable

from confbridge.services.conference.models import (
    ConferenceRule,
    ConferenceSession,
    OutcomeRecord,
    SequenceOutcome,
    SequenceState,
)
from confbridge.services.conference.sequencer import ConferenceSequencer
from confbridge.services.telephony.base import Call

logger = logging.getLogger(__name__)


class ConferenceManager:
    """Maps route-point DNs to rules and triggering call ids to running sequences.

    Usage::

        mgr = ConferenceManager(sequencer=sequencer, rules=settings.CONFERENCE_RULES)
        rule = mgr.match("885016")
        task = mgr.start(call, rule)   # None if the call already has a sequence
        await mgr.teardown_all()
    """

    def __init__(
        self,
        sequencer: ConferenceSequencer,
        rules: Iterable[ConferenceRule],
        recent_limit: int = 50,
    ) -> None:
        self._sequencer = sequencer
        self._rules: dict[str, ConferenceRule] = {}
        for rule in rules:
            if rule.route_point_dn in self._rules:
                logger.warning(
                    "Rule '%s' ignored: DN %s already handled by rule '%s'",
                    rule.name,
                    rule.route_point_dn,
                    self._rules[rule.route_point_dn].name,
                )
                continue
            self._rules[rule.route_point_dn] = rule
        self._active: dict[str, tuple[ConferenceSession, asyncio.Task]] = {}
        self._recent: deque[OutcomeRecord] = deque(maxlen=recent_limit)

    @property
    def rules(self) -> list[ConferenceRule]:
        return list(self._rules.values())

    @property
    def active_call_ids(self) -> list[str]:
        return list(self._active.keys())

    @property
    def recent_outcomes(self) -> list[OutcomeRecord]:
        """Finished sequences, most recent first."""
        return list(self._recent)

    def match(self, address_name: str) -> ConferenceRule | None:
        return self._rules.get(address_name)

    def get_session(self, call_id: str) -> ConferenceSession | None:
        entry = self._active.get(call_id)
        return entry[0] if entry else None

    def start(self, call: Call, rule: ConferenceRule) -> asyncio.Task | None:
        """Spawn a sequence for ``call``. Returns None if one is already running for it."""
        call_id = call.call_id
        if call_id in self._active:
            logger.warning("Call %s already has a conference sequence in flight, ignoring offer", call_id)
            return None

        session = ConferenceSession(trigger_call=call, rule=rule)
        task = asyncio.create_task(self._run(session), name=f"conference-{call_id}")
        self._active[call_id] = (session, task)
        # Registered before any awaiter, so bookkeeping is done by the time `await task` returns
        task.add_done_callback(lambda _: self._finished(session))
        logger.info("Call %s: conference sequence scheduled (rule=%s)", call_id, rule.name)
        return task

    async def _run(self, session: ConferenceSession) -> ConferenceSession:
        try:
            await self._sequencer.run(session)
        except asyncio.CancelledError:
            logger.info("Conference task for call %s cancelled", session.call_id)
        except Exception as exc:
            logger.error("Conference task for call %s crashed: %s", session.call_id, exc, exc_info=True)
            if session.outcome is None:
                session.finish(SequenceOutcome.FAILED, SequenceState.FAILED, error=str(exc))
        return session

    def _finished(self, session: ConferenceSession) -> None:
        self._active.pop(session.call_id, None)
        if session.outcome is None:
            # Cancelled before the sequencer got to run
            session.finish(SequenceOutcome.CANCELLED, SequenceState.ABORTED)
        self._recent.appendleft(OutcomeRecord.from_session(session))

    def cancel(self, call_id: str) -> bool:
        """Cancel the sequence for ``call_id``. Returns False if none is running."""
        entry = self._active.get(call_id)
        if entry is None:
            return False
        _, task = entry
        if task.done():
            return False
        task.cancel()
        return True

    async def wait_idle(self) -> None:
        """Wait for every in-flight sequence to finish."""
        tasks = [task for _, task in self._active.values()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def teardown_all(self) -> None:
        """Cancel all in-flight sequences. Used during shutdown."""
        call_ids = self.active_call_ids
        if not call_ids:
            logger.info("ConferenceManager teardown: no active sequences")
            return

        logger.info("ConferenceManager teardown: cancelling %d sequence(s)", len(call_ids))
        for call_id in call_ids:
            self.cancel(call_id)
        await self.wait_idle()
        logger.info("ConferenceManager teardown complete")
