"""Readiness and conference status API."""

from fastapi import APIRouter, Request

from confbridge.schemas.status import (
    ConferenceStatusResponse,
    InFlightSequence,
    ReadinessResponse,
    StatusResponse,
)

router = APIRouter()


@router.get("", response_model=StatusResponse)
def get_status(request: Request):
    """Readiness latches, in-flight and recent conference sequences, connected clients."""
    state = request.app.state
    manager = state.conference_manager
    sessions = (manager.get_session(call_id) for call_id in manager.active_call_ids)
    return StatusResponse(
        readiness=ReadinessResponse(provider=state.provider.name, latches=state.tracker.snapshot()),
        conferences=ConferenceStatusResponse(
            active_call_ids=manager.active_call_ids,
            in_flight=[InFlightSequence.from_session(session) for session in sessions if session is not None],
            recent=manager.recent_outcomes,
        ),
        websocket_clients=state.notifier.client_count,
    )


@router.get("/readiness", response_model=ReadinessResponse)
def get_readiness(request: Request):
    state = request.app.state
    return ReadinessResponse(provider=state.provider.name, latches=state.tracker.snapshot())
