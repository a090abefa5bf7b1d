"""Sessions repository - read access to bookable sessions.

Uses raw SQL with psycopg2 (no ORM). Sessions are written by admin tooling;
the reservation core only reads them.
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import Session

_SESSION_COLUMNS = """
    s.id, s.experience_id, s.start_at, s.booking_closes_at,
    s.max_seats_total, s.max_per_guide,
    s.adult_price_cents, s.minor_price_cents, s.currency,
    s.requires_payment, s.is_cancelled, e.title
"""


def _row_to_session(row: tuple) -> Session:
    return Session(
        id=str(row[0]),
        experience_id=str(row[1]),
        start_at=row[2],
        booking_closes_at=row[3],
        max_seats_total=row[4],
        max_per_guide=row[5],
        adult_price_cents=row[6],
        minor_price_cents=row[7],
        currency=row[8],
        requires_payment=row[9],
        is_cancelled=row[10],
        experience_title=row[11],
    )


def get_session(cur: PgCursor, session_id: str) -> Session | None:
    """Get a session by ID, with its experience title."""
    cur.execute(
        f"""
        SELECT {_SESSION_COLUMNS}
        FROM sessions s
        LEFT JOIN experiences e ON e.id = s.experience_id
        WHERE s.id = %s
        """,
        (session_id,),
    )
    row = cur.fetchone()
    return _row_to_session(row) if row else None


def list_open_sessions(
    cur: PgCursor,
    *,
    experience_id: str,
    now: datetime,
) -> list[Session]:
    """Future, not cancelled sessions still accepting bookings, by start time."""
    cur.execute(
        f"""
        SELECT {_SESSION_COLUMNS}
        FROM sessions s
        LEFT JOIN experiences e ON e.id = s.experience_id
        WHERE s.experience_id = %s
          AND s.is_cancelled = FALSE
          AND s.start_at > %s
          AND s.booking_closes_at > %s
        ORDER BY s.start_at ASC
        """,
        (experience_id, now, now),
    )
    return [_row_to_session(row) for row in cur.fetchall()]


def list_sessions_with_pending_waitlist(
    cur: PgCursor,
    *,
    now: datetime,
    session_id: str | None = None,
) -> list[Session]:
    """Open sessions having at least one WAITING reservation not yet notified."""
    conditions = [
        "s.is_cancelled = FALSE",
        "s.start_at > %s",
        "s.booking_closes_at > %s",
        """EXISTS (
            SELECT 1 FROM reservations r
            WHERE r.session_id = s.id
              AND r.status = 'WAITING'
              AND r.availability_email_sent_at IS NULL
        )""",
    ]
    params: list = [now, now]

    if session_id:
        conditions.append("s.id = %s")
        params.append(session_id)

    where_clause = " AND ".join(conditions)

    cur.execute(
        f"""
        SELECT {_SESSION_COLUMNS}
        FROM sessions s
        LEFT JOIN experiences e ON e.id = s.experience_id
        WHERE {where_clause}
        ORDER BY s.start_at ASC
        """,
        params,
    )
    return [_row_to_session(row) for row in cur.fetchall()]
