"""Session availability for the booking widget."""

from uuid import UUID

from fastapi import APIRouter, Query

from deltaroutes.domain.availability import list_session_availability

router = APIRouter(tags=["sessions"])


@router.get("/sessions")
def get_sessions(
    experience_id: UUID = Query(...),
    pax: int = Query(1, ge=1),
) -> dict:
    """Upcoming bookable sessions of an experience with free seats."""
    return {
        "ok": True,
        "pax": pax,
        "sessions": list_session_availability(str(experience_id), pax=pax),
    }
