"""Conference routing rules and per-sequence records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from confbridge.services.telephony.base import Call


class PartyConfig(BaseModel):
    """A fixed party: the terminal and the line (address) it calls from."""

    terminal: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class ConferenceRule(BaseModel):
    """Route one inbound route-point DN into a two-party conference.

    The first party dials ``destination``; once the destination has joined,
    the second party's existing call is merged in (or the second party dials
    ``destination`` directly).
    """

    name: str = Field(..., min_length=1)
    route_point_dn: str = Field(..., min_length=1, description="DN whose offered calls trigger the rule")
    route_point_terminal: str = Field(..., min_length=1, description="Route-point terminal hosting the DN")
    first_party: PartyConfig
    second_party: PartyConfig
    destination: str = Field(..., min_length=1, description="Number both parties are joined with")


class SequenceState(str, Enum):
    START = "start"
    DISCONNECTING = "disconnecting"
    CREATING = "creating"
    CONNECTING_FIRST = "connecting-first"
    AWAITING_FIRST_JOIN = "awaiting-first-join"
    MERGING_SECOND = "merging-second"
    CONNECTING_SECOND_DIRECT = "connecting-second-direct"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


class SequenceOutcome(str, Enum):
    MERGED = "merged"
    CONNECTED_DIRECT = "connected-direct"
    SECOND_PARTY_FAILED = "second-party-failed"
    JOIN_TIMEOUT = "join-timeout"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ConferenceSession:
    """State of one sequencer run. Lives only as long as the run plus the outcome history."""

    trigger_call: Call
    rule: ConferenceRule
    conference_call: Call | None = None
    state: SequenceState = SequenceState.START
    history: list[SequenceState] = field(default_factory=lambda: [SequenceState.START])
    outcome: SequenceOutcome | None = None
    join_polls: int = 0
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def call_id(self) -> str:
        return self.trigger_call.call_id

    def transition(self, state: SequenceState) -> None:
        self.state = state
        self.history.append(state)

    def finish(self, outcome: SequenceOutcome, state: SequenceState, error: str | None = None) -> None:
        self.outcome = outcome
        self.error = error
        self.finished_at = datetime.now(UTC)
        self.transition(state)


class OutcomeRecord(BaseModel):
    """Summary of a finished sequence, kept for status reporting."""

    call_id: str
    rule: str
    outcome: SequenceOutcome
    states: list[SequenceState]
    join_polls: int
    error: str | None = None
    conference_call_id: str | None = None
    started_at: datetime
    finished_at: datetime | None = None

    @classmethod
    def from_session(cls, session: ConferenceSession) -> OutcomeRecord:
        return cls(
            call_id=session.call_id,
            rule=session.rule.name,
            outcome=session.outcome or SequenceOutcome.FAILED,
            states=list(session.history),
            join_polls=session.join_polls,
            error=session.error,
            conference_call_id=session.conference_call.call_id if session.conference_call else None,
            started_at=session.started_at,
            finished_at=session.finished_at,
        )
