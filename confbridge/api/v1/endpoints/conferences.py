"""Conference rules and in-flight sequence control."""

from fastapi import APIRouter, HTTPException, Request

from confbridge.services.conference.models import ConferenceRule

router = APIRouter()


@router.get("/rules", response_model=list[ConferenceRule])
def list_rules(request: Request):
    """Configured route-point conference rules."""
    return request.app.state.conference_manager.rules


@router.post("/{call_id}/cancel", status_code=202)
def cancel_conference(call_id: str, request: Request):
    """Cancel the in-flight conference sequence triggered by ``call_id``."""
    if not request.app.state.conference_manager.cancel(call_id):
        raise HTTPException(status_code=404, detail=f"No conference sequence in flight for call '{call_id}'")
    return {"call_id": call_id, "status": "cancelling"}
