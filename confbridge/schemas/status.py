"""Response schemas for readiness and conference status."""

from pydantic import BaseModel, Field

from confbridge.services.conference.models import ConferenceSession, OutcomeRecord, SequenceState


class ReadinessResponse(BaseModel):
    provider: str = Field(..., description="Call-control provider name")
    latches: dict[str, bool]


class InFlightSequence(BaseModel):
    call_id: str
    rule: str
    state: SequenceState
    join_polls: int = 0

    @classmethod
    def from_session(cls, session: ConferenceSession) -> "InFlightSequence":
        return cls(
            call_id=session.call_id,
            rule=session.rule.name,
            state=session.state,
            join_polls=session.join_polls,
        )


class ConferenceStatusResponse(BaseModel):
    active_call_ids: list[str]
    in_flight: list[InFlightSequence] = Field(default_factory=list)
    recent: list[OutcomeRecord]


class StatusResponse(BaseModel):
    readiness: ReadinessResponse
    conferences: ConferenceStatusResponse
    websocket_clients: int
