"""Public availability listing for an experience's upcoming sessions."""

from datetime import datetime

from deltaroutes.domain.capacity import committed_seats_by_session, compute_free_seats
from deltaroutes.infra.db import txn
from deltaroutes.infra.repositories.sessions_repository import list_open_sessions
from deltaroutes.infra.time import utc_now


def list_session_availability(
    experience_id: str,
    *,
    pax: int = 1,
    now: datetime | None = None,
) -> list[dict]:
    """Open sessions with reserved/free seats and whether ``pax`` fits."""
    now = now or utc_now()

    with txn() as cur:
        sessions = list_open_sessions(cur, experience_id=experience_id, now=now)
        reserved = committed_seats_by_session(
            cur, session_ids=[s.id for s in sessions], now=now
        )

    result = []
    for session in sessions:
        reserved_seats = reserved.get(session.id, 0)
        seats = compute_free_seats(session.max_seats_total, reserved_seats)
        result.append(
            {
                "id": session.id,
                "experience_id": session.experience_id,
                "start_at": session.start_at.isoformat(),
                "booking_closes_at": session.booking_closes_at.isoformat(),
                "max_seats_total": session.max_seats_total,
                "reserved_seats": reserved_seats,
                "free_seats": seats,
                "can_fit": seats >= pax,
                "is_cancelled": session.is_cancelled,
            }
        )
    return result
