"""Capacity ledger - seats committed to a session, computed on demand.

Committed seats are the party sizes of CONFIRMED reservations plus HOLDs
whose ``hold_expires_at`` is still in the future. Nothing is cached: a hold
stops counting at its expiry instant, before any sweep runs.
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import Session

# Predicate over the reservations table selecting rows that hold seats.
# Takes one parameter: the cutoff instant.
SEAT_HOLDING_PREDICATE = (
    "(status = 'CONFIRMED' OR (status = 'HOLD' AND hold_expires_at > %s))"
)


def compute_free_seats(max_seats_total: int, committed: int) -> int:
    return max(0, max_seats_total - committed)


def committed_seats(cur: PgCursor, *, session_id: str, now: datetime) -> int:
    """Sum of party sizes currently holding seats in a session."""
    cur.execute(
        f"""
        SELECT COALESCE(SUM(total_pax), 0)
        FROM reservations
        WHERE session_id = %s AND {SEAT_HOLDING_PREDICATE}
        """,
        (session_id, now),
    )
    row = cur.fetchone()
    return int(row[0]) if row else 0


def free_seats(cur: PgCursor, *, session: Session, now: datetime) -> int:
    committed = committed_seats(cur, session_id=session.id, now=now)
    return compute_free_seats(session.max_seats_total, committed)


def committed_seats_by_session(
    cur: PgCursor,
    *,
    session_ids: list[str],
    now: datetime,
) -> dict[str, int]:
    """Committed seats for several sessions at once (missing means zero)."""
    if not session_ids:
        return {}

    cur.execute(
        f"""
        SELECT session_id, COALESCE(SUM(total_pax), 0)
        FROM reservations
        WHERE session_id = ANY(%s::uuid[]) AND {SEAT_HOLDING_PREDICATE}
        GROUP BY session_id
        """,
        (session_ids, now),
    )
    return {str(session_id): int(total) for session_id, total in cur.fetchall()}


def guide_loads(
    cur: PgCursor,
    *,
    session_id: str,
    guide_ids: list[str],
    now: datetime,
) -> dict[str, int]:
    """Seats each guide is committed to in a session (missing means zero)."""
    if not guide_ids:
        return {}

    cur.execute(
        f"""
        SELECT guide_id, COALESCE(SUM(total_pax), 0)
        FROM reservations
        WHERE session_id = %s
          AND guide_id = ANY(%s::uuid[])
          AND {SEAT_HOLDING_PREDICATE}
        GROUP BY guide_id
        """,
        (session_id, guide_ids, now),
    )
    return {str(guide_id): int(total) for guide_id, total in cur.fetchall()}
