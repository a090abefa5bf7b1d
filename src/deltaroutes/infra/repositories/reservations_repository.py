"""Reservations repository - persistence for reservation rows.

Uses raw SQL with psycopg2 (no ORM). Status and hold fields are written only
by ``deltaroutes.domain.lifecycle``; this module creates rows and manages the
one-shot notification markers.
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import (
    Language,
    Party,
    Reservation,
    ReservationStatus,
    parse_language,
)

_RESERVATION_COLUMNS = """
    id, session_id, customer_id, status, hold_expires_at,
    adults_count, minors_count, total_pax, guide_id,
    tour_language, browser_language, created_at,
    created_email_sent_at, confirmed_email_sent_at, availability_email_sent_at
"""

# Notification gates (nullable timestamps, set at most once).
CREATED_EMAIL_MARKER = "created_email_sent_at"
CONFIRMED_EMAIL_MARKER = "confirmed_email_sent_at"
AVAILABILITY_EMAIL_MARKER = "availability_email_sent_at"

_MARKERS = {CREATED_EMAIL_MARKER, CONFIRMED_EMAIL_MARKER, AVAILABILITY_EMAIL_MARKER}


def _row_to_reservation(row: tuple) -> Reservation:
    return Reservation(
        id=str(row[0]),
        session_id=str(row[1]),
        customer_id=str(row[2]),
        status=ReservationStatus(row[3]),
        hold_expires_at=row[4],
        adults_count=row[5],
        minors_count=row[6],
        total_pax=row[7],
        guide_id=str(row[8]) if row[8] else None,
        tour_language=parse_language(row[9]),
        browser_language=parse_language(row[10]),
        created_at=row[11],
        created_email_sent_at=row[12],
        confirmed_email_sent_at=row[13],
        availability_email_sent_at=row[14],
    )


def get_reservation(cur: PgCursor, reservation_id: str) -> Reservation | None:
    cur.execute(
        f"SELECT {_RESERVATION_COLUMNS} FROM reservations WHERE id = %s",
        (reservation_id,),
    )
    row = cur.fetchone()
    return _row_to_reservation(row) if row else None


def find_by_session_and_customer(
    cur: PgCursor,
    *,
    session_id: str,
    customer_id: str,
) -> Reservation | None:
    cur.execute(
        f"""
        SELECT {_RESERVATION_COLUMNS}
        FROM reservations
        WHERE session_id = %s AND customer_id = %s
        """,
        (session_id, customer_id),
    )
    row = cur.fetchone()
    return _row_to_reservation(row) if row else None


def insert_reservation(
    cur: PgCursor,
    *,
    session_id: str,
    customer_id: str,
    status: ReservationStatus,
    party: Party,
    hold_expires_at: datetime | None = None,
    guide_id: str | None = None,
    tour_language: Language | None = None,
    browser_language: Language | None = None,
) -> Reservation | None:
    """Insert a reservation.

    Returns:
        The new reservation, or None if the (session, customer) pair already
        has one (UNIQUE constraint).
    """
    cur.execute(
        f"""
        INSERT INTO reservations (
            session_id, customer_id, status, hold_expires_at,
            adults_count, minors_count, total_pax, guide_id,
            tour_language, browser_language
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (session_id, customer_id) DO NOTHING
        RETURNING {_RESERVATION_COLUMNS}
        """,
        (
            session_id,
            customer_id,
            status.value,
            hold_expires_at,
            party.adults_count,
            party.minors_count,
            party.total_pax,
            guide_id,
            tour_language.value if tour_language else None,
            browser_language.value if browser_language else None,
        ),
    )
    row = cur.fetchone()
    return _row_to_reservation(row) if row else None


def list_unnotified_waiting(
    cur: PgCursor,
    *,
    session_id: str,
    limit: int = 50,
) -> list[Reservation]:
    """WAITING reservations not yet notified, in arrival order."""
    cur.execute(
        f"""
        SELECT {_RESERVATION_COLUMNS}
        FROM reservations
        WHERE session_id = %s
          AND status = 'WAITING'
          AND availability_email_sent_at IS NULL
        ORDER BY created_at ASC, id ASC
        LIMIT %s
        """,
        (session_id, limit),
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]


def claim_marker(
    cur: PgCursor,
    *,
    reservation_id: str,
    marker: str,
    now: datetime,
    created_kind: str | None = None,
) -> bool:
    """Set a notification marker only if it is currently unset.

    Returns:
        True if this call set the marker (caller owns the notification).
    """
    if marker not in _MARKERS:
        raise ValueError(f"Unknown marker: {marker}")

    if marker == CREATED_EMAIL_MARKER:
        cur.execute(
            """
            UPDATE reservations
            SET created_email_sent_at = %s, created_email_kind = %s
            WHERE id = %s AND created_email_sent_at IS NULL
            """,
            (now, created_kind, reservation_id),
        )
    else:
        cur.execute(
            f"""
            UPDATE reservations
            SET {marker} = %s
            WHERE id = %s AND {marker} IS NULL
            """,
            (now, reservation_id),
        )
    return cur.rowcount == 1


def clear_marker(cur: PgCursor, *, reservation_id: str, marker: str) -> None:
    """Re-arm a notification marker."""
    if marker not in _MARKERS:
        raise ValueError(f"Unknown marker: {marker}")

    if marker == CREATED_EMAIL_MARKER:
        cur.execute(
            """
            UPDATE reservations
            SET created_email_sent_at = NULL, created_email_kind = NULL
            WHERE id = %s
            """,
            (reservation_id,),
        )
    else:
        cur.execute(
            f"UPDATE reservations SET {marker} = NULL WHERE id = %s",
            (reservation_id,),
        )


def get_notification_context(cur: PgCursor, reservation_id: str) -> dict | None:
    """Everything needed to render a customer email for a reservation.

    Returns:
        Dict with reservation, customer, session and payment fields, or None.
    """
    cur.execute(
        """
        SELECT r.id, r.session_id, r.status, r.hold_expires_at,
               r.adults_count, r.minors_count, r.total_pax, r.tour_language,
               c.email, c.name,
               s.start_at, e.title,
               p.amount_cents, p.currency
        FROM reservations r
        JOIN customers c ON c.id = r.customer_id
        JOIN sessions s ON s.id = r.session_id
        LEFT JOIN experiences e ON e.id = s.experience_id
        LEFT JOIN payments p ON p.reservation_id = r.id
        WHERE r.id = %s
        """,
        (reservation_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None

    return {
        "reservation_id": str(row[0]),
        "session_id": str(row[1]),
        "status": row[2],
        "hold_expires_at": row[3],
        "adults_count": row[4],
        "minors_count": row[5],
        "total_pax": row[6],
        "tour_language": row[7],
        "customer_email": row[8],
        "customer_name": row[9],
        "start_at": row[10],
        "experience_title": row[11],
        "amount_cents": row[12],
        "currency": row[13],
    }
